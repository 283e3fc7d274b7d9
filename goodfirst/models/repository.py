"""SQLAlchemy models for cached repositories and their activity windows."""
from typing import Any, Dict

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text,
                        UniqueConstraint)
from sqlalchemy.orm import relationship

from goodfirst.clock import utcnow
from goodfirst.models.base import Base


def _iso(value):
    return value.isoformat() if value else None


class Repository(Base):
    """A repository somebody opened the detail view of."""

    __tablename__ = 'repositories'
    __table_args__ = (
        CheckConstraint('health_score >= 0 AND health_score <= 100', name='ck_repositories_health_score_range'),
    )

    id = Column(Integer, primary_key=True)
    full_name = Column(String(255), nullable=False, unique=True, index=True)  # "owner/name"
    description = Column(Text, nullable=True)
    stars = Column(Integer, nullable=False, default=0)
    forks = Column(Integer, nullable=False, default=0)
    open_issues = Column(Integer, nullable=False, default=0)
    default_branch = Column(String(255), nullable=True)
    last_commit_at = Column(DateTime, nullable=True)
    has_good_first_issues = Column(Boolean, nullable=False, default=False)

    # Cache bookkeeping
    etag = Column(String(255), nullable=True)
    last_fetched_at = Column(DateTime, nullable=True, index=True)  # drives TTL eviction
    health_score = Column(Integer, nullable=False, default=0)
    health_refreshed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    activities = relationship(
        "RepoActivity",
        back_populates="repository",
        cascade="all, delete-orphan",
        order_by="RepoActivity.window_end.desc()",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'full_name': self.full_name,
            'description': self.description,
            'stars': self.stars,
            'forks': self.forks,
            'open_issues': self.open_issues,
            'default_branch': self.default_branch,
            'last_commit_at': _iso(self.last_commit_at),
            'has_good_first_issues': self.has_good_first_issues,
            'etag': self.etag,
            'last_fetched_at': _iso(self.last_fetched_at),
            'health_score': self.health_score,
            'health_refreshed_at': _iso(self.health_refreshed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Repository(full_name='{self.full_name}', health_score={self.health_score}, last_fetched_at='{self.last_fetched_at}')>"


class RepoActivity(Base):
    """Pull request and issue counters for one 30-day window of a repository."""

    __tablename__ = 'repo_activities'
    __table_args__ = (
        UniqueConstraint('repo_id', 'window_start', 'window_end', name='uq_repo_activities_window'),
    )

    id = Column(Integer, primary_key=True)
    repo_id = Column(Integer, ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False, index=True)
    window_start = Column(DateTime, nullable=False)
    window_end = Column(DateTime, nullable=False)
    prs_opened = Column(Integer, nullable=False, default=0)
    prs_merged = Column(Integer, nullable=False, default=0)
    issues_opened = Column(Integer, nullable=False, default=0)
    issues_comment = Column(Integer, nullable=False, default=0)
    mean_merge_days = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    repository = relationship("Repository", back_populates="activities")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'repo_id': self.repo_id,
            'window_start': _iso(self.window_start),
            'window_end': _iso(self.window_end),
            'prs_opened': self.prs_opened,
            'prs_merged': self.prs_merged,
            'issues_opened': self.issues_opened,
            'issues_comment': self.issues_comment,
            'mean_merge_days': self.mean_merge_days,
        }

    def __repr__(self):
        return f"<RepoActivity(repo_id={self.repo_id}, window_end='{self.window_end}')>"
