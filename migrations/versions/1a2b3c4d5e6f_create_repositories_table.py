"""create repositories table

Revision ID: 1a2b3c4d5e6f
Revises: 
Create Date: 2026-09-28 10:12:41.203117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1a2b3c4d5e6f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('repositories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('stars', sa.Integer(), nullable=False),
        sa.Column('forks', sa.Integer(), nullable=False),
        sa.Column('open_issues', sa.Integer(), nullable=False),
        sa.Column('default_branch', sa.String(length=255), nullable=True),
        sa.Column('last_commit_at', sa.DateTime(), nullable=True),
        sa.Column('has_good_first_issues', sa.Boolean(), nullable=False),
        sa.Column('etag', sa.String(length=255), nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=True),
        sa.Column('health_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('health_refreshed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('health_score >= 0 AND health_score <= 100', name='ck_repositories_health_score_range'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_repositories_full_name', 'repositories', ['full_name'], unique=True)
    op.create_index('ix_repositories_last_fetched_at', 'repositories', ['last_fetched_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_repositories_last_fetched_at', 'repositories')
    op.drop_index('ix_repositories_full_name', 'repositories')
    op.drop_table('repositories')
