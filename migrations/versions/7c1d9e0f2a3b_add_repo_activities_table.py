"""add repo activities table

Revision ID: 7c1d9e0f2a3b
Revises: 1a2b3c4d5e6f
Create Date: 2026-09-29 16:40:03.551902

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c1d9e0f2a3b'
down_revision: Union[str, None] = '1a2b3c4d5e6f'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('repo_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repo_id', sa.Integer(), nullable=False),
        sa.Column('window_start', sa.DateTime(), nullable=False),
        sa.Column('window_end', sa.DateTime(), nullable=False),
        sa.Column('prs_opened', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('prs_merged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('issues_opened', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('issues_comment', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('mean_merge_days', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('repo_id', 'window_start', 'window_end', name='uq_repo_activities_window'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_repo_activities_repo_id', 'repo_activities', ['repo_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_repo_activities_repo_id', 'repo_activities')
    op.drop_table('repo_activities')
