"""Create identities and provider_links tables

Revision ID: 0001_identities
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_identities'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create identity tables with their uniqueness constraints."""
    op.create_table(
        'identities',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('display_name', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('avatar_url', sa.String(length=500), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_identities_email', 'identities', ['email'], unique=True)
    op.create_index('ix_identities_username', 'identities', ['username'], unique=True)
    op.create_index('ix_identities_email_verified', 'identities', ['email_verified'])

    op.create_table(
        'provider_links',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('identity_id', sa.String(length=36), nullable=False),
        sa.Column(
            'provider',
            sa.Enum(
                'google',
                'facebook',
                'line',
                name='oauth_provider_name',
                native_enum=False,
                create_constraint=True,
                length=50,
            ),
            nullable=False,
        ),
        sa.Column('provider_subject_id', sa.String(length=255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False, server_default=''),
        sa.Column('refresh_token', sa.Text(), nullable=False, server_default=''),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('profile_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['identity_id'], ['identities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'provider_subject_id', name='uq_provider_links_provider_subject'),
        sa.UniqueConstraint('identity_id', 'provider', name='uq_provider_links_identity_provider'),
    )
    op.create_index('ix_provider_links_identity_id', 'provider_links', ['identity_id'])
    op.create_index('ix_provider_links_provider', 'provider_links', ['provider'])


def downgrade() -> None:
    """Drop identity tables."""
    op.drop_index('ix_provider_links_provider', table_name='provider_links')
    op.drop_index('ix_provider_links_identity_id', table_name='provider_links')
    op.drop_table('provider_links')
    op.drop_index('ix_identities_email_verified', table_name='identities')
    op.drop_index('ix_identities_username', table_name='identities')
    op.drop_index('ix_identities_email', table_name='identities')
    op.drop_table('identities')
