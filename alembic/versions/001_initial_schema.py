"""
Initial schema - users, user_roles, role_change_log, revoked_tokens

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_ROWS = sa.text('deleted_at IS NULL')


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, default=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    # Email/username are unique among users that are not soft-deleted
    op.create_index(
        'uq_users_email_active', 'users', ['email'], unique=True,
        postgresql_where=ACTIVE_ROWS, sqlite_where=ACTIVE_ROWS,
    )
    op.create_index(
        'uq_users_username_active', 'users', ['username'], unique=True,
        postgresql_where=ACTIVE_ROWS, sqlite_where=ACTIVE_ROWS,
    )

    # Role memberships
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'role'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )

    # Role change audit log
    op.create_table(
        'role_change_log',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('target_user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('acting_user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('action', sa.String(10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['target_user_id'], ['users.id']),
    )
    op.create_index('ix_role_change_log_target_user_id', 'role_change_log', ['target_user_id'])
    op.create_index('ix_role_change_log_created_at', 'role_change_log', ['created_at'])

    # Refresh token revocations
    op.create_table(
        'revoked_tokens',
        sa.Column('token_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('kind', sa.String(10), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('token_id'),
    )
    op.create_index('ix_revoked_tokens_expires_at', 'revoked_tokens', ['expires_at'])


def downgrade() -> None:
    op.drop_table('revoked_tokens')
    op.drop_table('role_change_log')
    op.drop_table('user_roles')
    op.drop_table('users')
