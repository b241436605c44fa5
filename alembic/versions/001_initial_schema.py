"""Initial access control schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_ONLY = sa.text('deleted_at IS NULL')


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _deleted_at_index(table: str) -> None:
    op.create_index(f'ix_{table}_deleted_at', table, ['deleted_at'], unique=False)


def upgrade() -> None:
    """Create access group, permission and resource grant tables."""

    # Reference table for user ids owned by the host application
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_users')
    )
    _deleted_at_index('users')

    op.create_table('access_groups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_access_groups')
    )
    _deleted_at_index('access_groups')
    op.create_index(
        'uq_access_groups_name_active', 'access_groups', ['name'], unique=True,
        postgresql_where=ACTIVE_ONLY, sqlite_where=ACTIVE_ONLY,
    )

    op.create_table('permissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_permissions')
    )
    _deleted_at_index('permissions')
    op.create_index(
        'uq_permissions_code_active', 'permissions', ['code'], unique=True,
        postgresql_where=ACTIVE_ONLY, sqlite_where=ACTIVE_ONLY,
    )

    op.create_table('access_group_permissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('access_group_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['access_group_id'], ['access_groups.id'],
                                name='fk_access_group_permissions_access_group_id_access_groups'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'],
                                name='fk_access_group_permissions_permission_id_permissions'),
        sa.PrimaryKeyConstraint('id', name='pk_access_group_permissions'),
        sa.UniqueConstraint('access_group_id', 'permission_id', name='uq_access_group_permission')
    )
    _deleted_at_index('access_group_permissions')
    op.create_index('ix_access_group_permissions_access_group_id', 'access_group_permissions', ['access_group_id'])
    op.create_index('ix_access_group_permissions_permission_id', 'access_group_permissions', ['permission_id'])

    op.create_table('access_groups_users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('access_group_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['access_group_id'], ['access_groups.id'],
                                name='fk_access_groups_users_access_group_id_access_groups'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                name='fk_access_groups_users_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_access_groups_users'),
        sa.UniqueConstraint('access_group_id', 'user_id', name='uq_access_group_user')
    )
    _deleted_at_index('access_groups_users')
    op.create_index('ix_access_groups_users_access_group_id', 'access_groups_users', ['access_group_id'])
    op.create_index('ix_access_groups_users_user_id', 'access_groups_users', ['user_id'])

    op.create_table('resource_level_permission_types',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'],
                                name='fk_resource_level_permission_types_permission_id_permissions'),
        sa.PrimaryKeyConstraint('id', name='pk_resource_level_permission_types'),
        sa.UniqueConstraint('permission_id', 'name', name='uq_resource_type_permission_name')
    )
    _deleted_at_index('resource_level_permission_types')
    op.create_index(
        'ix_resource_level_permission_types_permission_id',
        'resource_level_permission_types', ['permission_id'],
    )

    op.create_table('resource_level_permissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('resource_type_id', sa.Integer(), nullable=False),
        sa.Column('access_group_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'],
                                name='fk_resource_level_permissions_permission_id_permissions'),
        sa.ForeignKeyConstraint(['resource_type_id'], ['resource_level_permission_types.id'],
                                name='fk_resource_level_permissions_resource_type_id_resource_level_permission_types'),
        sa.ForeignKeyConstraint(['access_group_id'], ['access_groups.id'],
                                name='fk_resource_level_permissions_access_group_id_access_groups'),
        sa.PrimaryKeyConstraint('id', name='pk_resource_level_permissions'),
        sa.UniqueConstraint(
            'permission_id', 'resource_id', 'resource_type_id', 'access_group_id',
            name='uq_resource_level_permission',
        )
    )
    _deleted_at_index('resource_level_permissions')
    op.create_index(
        'ix_resource_level_permissions_access_group_id',
        'resource_level_permissions', ['access_group_id'],
    )
    op.create_index(
        'idx_resource_level_permission_lookup',
        'resource_level_permissions', ['resource_type_id', 'permission_id', 'access_group_id'],
    )


def downgrade() -> None:
    """Drop all access control tables."""
    # Drop tables in reverse order
    op.drop_table('resource_level_permissions')
    op.drop_table('resource_level_permission_types')
    op.drop_table('access_groups_users')
    op.drop_table('access_group_permissions')
    op.drop_table('permissions')
    op.drop_table('access_groups')
    op.drop_table('users')
