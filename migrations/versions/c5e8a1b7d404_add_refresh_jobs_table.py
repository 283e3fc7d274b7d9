"""add refresh jobs table

Revision ID: c5e8a1b7d404
Revises: 7c1d9e0f2a3b
Create Date: 2026-10-02 09:05:17.884310

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c5e8a1b7d404'
down_revision: Union[str, None] = '7c1d9e0f2a3b'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'refresh_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('kind', sa.String(length=50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('repo_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )

    # The processor claims the oldest queued job; enqueue checks by repo_id.
    op.create_index('idx_refresh_jobs_status_created_at', 'refresh_jobs', ['status', 'created_at'])
    op.create_index('ix_refresh_jobs_repo_id', 'refresh_jobs', ['repo_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_refresh_jobs_repo_id', 'refresh_jobs')
    op.drop_index('idx_refresh_jobs_status_created_at', 'refresh_jobs')
    op.drop_table('refresh_jobs')
