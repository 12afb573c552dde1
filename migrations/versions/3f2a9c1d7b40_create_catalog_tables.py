"""create catalog tables

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-19 10:12:44.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, as SQLModel maps python enums.
CHARACTERISTIC_TYPES = (
    'TEXT', 'TEXTAREA', 'LINK', 'EMAIL', 'NUMBER', 'FLOAT', 'BOOLEAN',
    'DATE', 'DATE_HOUR', 'DATE_RANGE', 'DATE_HOUR_RANGE', 'SELECT', 'RADIO',
    'MULTI_SELECT', 'CHECKBOX', 'MULTI_TEXT', 'MULTI_TEXT_AREA', 'FILE',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'entity',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'DISABLED', name='entitystatus'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_entity_name', 'entity', ['name'])

    op.create_table(
        'tag',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('color', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('font_color', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['entity_id'], ['entity.id']),
        sa.UniqueConstraint('entity_id', 'name'),
    )
    op.create_index('ix_tag_entity_id', 'tag', ['entity_id'])

    op.create_table(
        'characteristic',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('type', sa.Enum(*CHARACTERISTIC_TYPES, name='characteristictype'), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('units', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['entity_id'], ['entity.id']),
        sa.UniqueConstraint('entity_id', 'name'),
    )
    op.create_index('ix_characteristic_entity_id', 'characteristic', ['entity_id'])
    op.create_index('ix_characteristic_name', 'characteristic', ['name'])

    op.create_table(
        'material',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('characteristic_order', sa.JSON(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['entity_id'], ['entity.id']),
    )
    op.create_index('ix_material_entity_id', 'material', ['entity_id'])
    op.create_index('ix_material_name', 'material', ['name'])
    op.create_index('ix_material_deleted_at', 'material', ['deleted_at'])

    op.create_table(
        'materialtaglink',
        sa.Column('material_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('tag_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.ForeignKeyConstraint(['material_id'], ['material.id']),
        sa.ForeignKeyConstraint(['tag_id'], ['tag.id']),
    )

    op.create_table(
        'filerecord',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('path', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'materialcharacteristic',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('material_id', sa.Uuid(), nullable=False),
        sa.Column('characteristic_id', sa.Uuid(), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['material_id'], ['material.id']),
        sa.ForeignKeyConstraint(['characteristic_id'], ['characteristic.id']),
        sa.UniqueConstraint('material_id', 'characteristic_id'),
    )
    op.create_index('ix_materialcharacteristic_material_id', 'materialcharacteristic', ['material_id'])
    op.create_index('ix_materialcharacteristic_characteristic_id', 'materialcharacteristic', ['characteristic_id'])

    op.create_table(
        'materialcharacteristicfile',
        sa.Column('material_characteristic_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('file_id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['material_characteristic_id'], ['materialcharacteristic.id']),
        sa.ForeignKeyConstraint(['file_id'], ['filerecord.id']),
    )

    op.create_table(
        'materialhistory',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('material_id', sa.Uuid(), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('characteristics', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['material_id'], ['material.id']),
        sa.UniqueConstraint('material_id', 'revision'),
    )
    op.create_index('ix_materialhistory_material_id', 'materialhistory', ['material_id'])
    op.create_index('ix_materialhistory_created_at', 'materialhistory', ['created_at'])

    op.create_table(
        'activitylog',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('actor_user_id', sa.Uuid(), nullable=True),
        sa.Column('record_type', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('record_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.Enum('CREATE', 'UPDATE', 'DELETE', name='auditaction'), nullable=False),
        sa.Column('changes', sa.JSON(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['entity_id'], ['entity.id']),
    )
    op.create_index('ix_activitylog_entity_id', 'activitylog', ['entity_id'])
    op.create_index('ix_activitylog_timestamp', 'activitylog', ['timestamp'])


def downgrade():
    """
    Drop everything in reverse dependency order.
    Enum types only exist as separate objects on PostgreSQL.
    """
    for index_name, table in (
        ('ix_activitylog_timestamp', 'activitylog'),
        ('ix_activitylog_entity_id', 'activitylog'),
        ('ix_materialhistory_created_at', 'materialhistory'),
        ('ix_materialhistory_material_id', 'materialhistory'),
        ('ix_materialcharacteristic_characteristic_id', 'materialcharacteristic'),
        ('ix_materialcharacteristic_material_id', 'materialcharacteristic'),
        ('ix_material_deleted_at', 'material'),
        ('ix_material_name', 'material'),
        ('ix_material_entity_id', 'material'),
        ('ix_characteristic_name', 'characteristic'),
        ('ix_characteristic_entity_id', 'characteristic'),
        ('ix_tag_entity_id', 'tag'),
        ('ix_entity_name', 'entity'),
    ):
        op.drop_index(index_name, table_name=table)

    for table in (
        'activitylog', 'materialhistory', 'materialcharacteristicfile',
        'materialcharacteristic', 'filerecord', 'materialtaglink',
        'material', 'characteristic', 'tag', 'entity',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS auditaction")
        op.execute("DROP TYPE IF EXISTS characteristictype")
        op.execute("DROP TYPE IF EXISTS entitystatus")
