"""Initial schema - devices and heartbeat events

Revision ID: 0001
Revises:
Create Date: 2025-10-13

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create devices table
    op.create_table(
        'devices',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('composite_device_id', sa.String(length=16), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('key_digest', sa.String(length=64), nullable=True),
        sa.Column('firmware_version', sa.Text(), nullable=True),
        sa.Column('hostname', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='offline'),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint("status IN ('online', 'offline')", name='ck_devices_status'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_devices_composite_device_id', 'devices', ['composite_device_id'], unique=True)
    op.create_index('ix_devices_status', 'devices', ['status'], unique=False)

    # Create heartbeat events table
    op.create_table(
        'device_heartbeats',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.Uuid(), nullable=False),
        sa.Column('composite_device_id', sa.String(length=36), nullable=True),
        sa.Column('rssi', sa.Float(), nullable=True),
        sa.Column('fw_version', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('hostname', sa.Text(), nullable=True),
        sa.Column('ts', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_device_heartbeats_device_id', 'device_heartbeats', ['device_id'], unique=False)
    op.create_index('ix_device_heartbeats_ts', 'device_heartbeats', ['ts'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_device_heartbeats_ts', table_name='device_heartbeats')
    op.drop_index('ix_device_heartbeats_device_id', table_name='device_heartbeats')
    op.drop_table('device_heartbeats')
    op.drop_index('ix_devices_status', table_name='devices')
    op.drop_index('ix_devices_composite_device_id', table_name='devices')
    op.drop_table('devices')
