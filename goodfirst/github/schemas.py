"""Pydantic shapes for data coming back from GitHub."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RepositoryMetadata(BaseModel):
    """The repository fields we cache."""
    id: Optional[int] = None
    full_name: str
    description: Optional[str] = None
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    default_branch: Optional[str] = None
    last_commit_at: Optional[datetime] = None
    has_good_first_issues: bool = False


class RepositorySummary(RepositoryMetadata):
    """One search hit."""
    language: Optional[str] = None
    html_url: Optional[str] = None
    health_score: Optional[int] = None


class SearchPage(BaseModel):
    total_count: int = 0
    items: List[RepositorySummary] = Field(default_factory=list)


class FetchResult(BaseModel):
    """Outcome of a conditional repository fetch.

    On 304 `not_modified` is set, `metadata` is None and `etag` is the
    validator that was sent.
    """
    not_modified: bool = False
    etag: Optional[str] = None
    metadata: Optional[RepositoryMetadata] = None
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[int] = None


class ActivityData(BaseModel):
    """Raw activity since a point in time, as plain GitHub-shaped dicts."""
    since: datetime
    commits: List[Dict[str, Any]] = Field(default_factory=list)
    issues: List[Dict[str, Any]] = Field(default_factory=list)
    pulls: List[Dict[str, Any]] = Field(default_factory=list)
