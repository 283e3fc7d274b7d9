"""SQLAlchemy model for queued refresh work."""
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, Text

from goodfirst.clock import utcnow
from goodfirst.models.base import Base

KIND_REFRESH_REPO = 'refresh_repo'

STATUS_QUEUED = 'queued'
STATUS_PROCESSING = 'processing'
STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'

ACTIVE_STATUSES = (STATUS_QUEUED, STATUS_PROCESSING)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)


class RefreshJob(Base):
    """A durable unit of deferred work."""

    __tablename__ = 'refresh_jobs'
    __table_args__ = (
        Index('idx_refresh_jobs_status_created_at', 'status', 'created_at'),
    )

    id = Column(Integer, primary_key=True)
    kind = Column(String(50), nullable=False, default=KIND_REFRESH_REPO)
    payload = Column(JSON, nullable=True)  # {"repo_id": 12}
    # Copy of payload["repo_id"] for the duplicate check. No FK: a job has to
    # outlive its repository so the processor can report it missing.
    repo_id = Column(Integer, nullable=True, index=True)
    status = Column(String(20), nullable=False, default=STATUS_QUEUED)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind,
            'payload': self.payload,
            'repo_id': self.repo_id,
            'status': self.status,
            'attempts': self.attempts,
            'last_error': self.last_error,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }
