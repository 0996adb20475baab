"""
Tests for device identifier resolution and lookup.
"""

import uuid

import pytest

from greenhouse.core.errors import DeviceNotFound, InvalidIdentifierFormat, MissingIdentifier
from greenhouse.services.registry import (
    COMPOSITE,
    LEGACY,
    is_valid_composite_id,
    lookup_device,
    parse_identifier,
    resolve_identifier,
)


class TestCompositeIdFormat:
    """Tests for the PROJECT-ESPn format."""

    @pytest.mark.parametrize("number", range(1, 21))
    def test_all_device_numbers_accepted(self, number):
        assert is_valid_composite_id(f"PROJ1-ESP{number}")

    @pytest.mark.parametrize("value", ["ABCD-ESP1", "P1000-ESP20", "12345-ESP9", "ZZZZZ-ESP10"])
    def test_valid_project_tokens(self, value):
        assert is_valid_composite_id(value)
        assert resolve_identifier(None, value) == parse_identifier(value)

    @pytest.mark.parametrize("value", [
        "proj1-esp5",       # lowercase
        "PROJ1-ESP0",       # device number starts at 1
        "PROJ1-ESP21",      # max 20
        "PROJ1-ESP05",      # no leading zero
        "ABC-ESP1",         # project too short
        "ABCDEF-ESP1",      # project too long
        "PROJ1_ESP5",
        "PROJ1-ESP5 ",
        " PROJ1-ESP5",
        "PROJ1-ESP5\n",
        "PROJ1-DEV5",
        "PROJ1-ESP",
    ])
    def test_invalid_formats_rejected(self, value):
        assert not is_valid_composite_id(value)
        with pytest.raises(InvalidIdentifierFormat):
            resolve_identifier(None, value)


class TestResolveIdentifier:

    def test_missing_both_headers(self):
        with pytest.raises(MissingIdentifier):
            resolve_identifier(None, None)

    def test_empty_headers_count_as_missing(self):
        with pytest.raises(MissingIdentifier):
            resolve_identifier("", "")

    def test_legacy_uuid(self):
        value = str(uuid.uuid4())
        identifier = resolve_identifier(value, None)
        assert identifier.kind == LEGACY
        assert identifier.value == value

    def test_composite_wins_over_legacy(self):
        identifier = resolve_identifier(str(uuid.uuid4()), "PROJ1-ESP5")
        assert identifier.kind == COMPOSITE
        assert identifier.value == "PROJ1-ESP5"

    def test_invalid_composite_not_masked_by_legacy(self):
        with pytest.raises(InvalidIdentifierFormat):
            resolve_identifier(str(uuid.uuid4()), "proj1-esp5")


class TestLookupDevice:

    def test_lookup_by_composite_id(self, make_device, run):
        device = make_device(composite_device_id="PROJ1-ESP5", config_version=3)

        record = run(lookup_device, resolve_identifier(None, "PROJ1-ESP5"))

        assert record.id == device.id
        assert record.key_digest is None
        assert record.config_version == 3
        assert record.canonical_id == "PROJ1-ESP5"

    def test_lookup_by_legacy_uuid_returns_composite_canonical_id(self, make_device, run):
        device = make_device(composite_device_id="GH001-ESP2")

        record = run(lookup_device, resolve_identifier(str(device.id), None))

        assert record.id == device.id
        assert record.canonical_id == "GH001-ESP2"

    def test_legacy_device_without_composite_id(self, make_device, run):
        device = make_device(composite_device_id=None)

        record = run(lookup_device, resolve_identifier(str(device.id), None))

        assert record.canonical_id == str(device.id)

    def test_unknown_composite_id(self, make_device, run):
        make_device(composite_device_id="PROJ1-ESP5")

        with pytest.raises(DeviceNotFound) as exc_info:
            run(lookup_device, resolve_identifier(None, "PROJ1-ESP6"))

        assert "PROJ1-ESP6" in exc_info.value.details

    def test_unknown_uuid(self, run):
        with pytest.raises(DeviceNotFound):
            run(lookup_device, resolve_identifier(str(uuid.uuid4()), None))

    def test_malformed_uuid_is_not_found(self, run):
        with pytest.raises(DeviceNotFound):
            run(lookup_device, resolve_identifier("not-a-uuid", None))
