"""Add config_version and device_sensor_configs

Revision ID: 0002
Revises: 0001
Create Date: 2025-11-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Bumped on every sensor config change, devices compare it on heartbeat
    op.add_column('devices', sa.Column('config_version', sa.Integer(), nullable=False, server_default='1'))

    op.create_table(
        'device_sensor_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.Uuid(), nullable=False),
        sa.Column('port_id', sa.String(length=10), nullable=False),
        sa.Column('sensor_type', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('configured_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id', 'port_id', name='uq_sensor_config_device_port'),
    )
    op.create_index('ix_device_sensor_configs_device_id', 'device_sensor_configs', ['device_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_device_sensor_configs_device_id', table_name='device_sensor_configs')
    op.drop_table('device_sensor_configs')
    op.drop_column('devices', 'config_version')
