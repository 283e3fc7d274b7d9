"""Caller-facing operations: search, detail view, listing, refresh requests, health and cleanup."""
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from common.logging import LoggingManager
from goodfirst.clock import utcnow
from goodfirst.github.client import GitHubClient, RepositoryNotFound
from goodfirst.github.schemas import SearchPage
from goodfirst.health import compute_health_score
from goodfirst.jobs.cleanup import CleanupResult, CleanupSweeper
from goodfirst.jobs.queue import JobQueue
from goodfirst.models.refresh_job import RefreshJob
from goodfirst.models.repository import Repository
from goodfirst.ratelimit import TokenBucketLimiter
from goodfirst.store import RepositoryStore

logger = LoggingManager.get_logger('app.repository_service')

MAX_SEARCH_PER_PAGE = 30
MAX_LIST_PER_PAGE = 50
DEFAULT_HEALTH_REFRESH = timedelta(hours=12)


class RepositoryService:
    def __init__(self, store: RepositoryStore, queue: JobQueue, github: GitHubClient, sweeper: CleanupSweeper,
                 limiter: Optional[TokenBucketLimiter] = None,
                 health_refresh_interval: timedelta = DEFAULT_HEALTH_REFRESH,
                 clock: Callable = utcnow):
        self.store = store
        self.queue = queue
        self.github = github
        self.sweeper = sweeper
        self.limiter = limiter
        self.health_refresh_interval = health_refresh_interval
        self.clock = clock

    def search(self, query: str, page: int = 1, per_page: int = 10, sort: Optional[str] = "updated",
               order: Optional[str] = "desc", caller: str = "anonymous") -> SearchPage:
        """Search GitHub and score each hit without activity data. Nothing is stored."""
        if not query or not query.strip():
            raise ValueError("Missing search query")
        if self.limiter is not None:
            self.limiter.acquire(caller)

        page = max(page or 1, 1)
        per_page = min(max(per_page or 10, 1), MAX_SEARCH_PER_PAGE)
        result = self.github.search_repositories(query, page=page, per_page=per_page, sort=sort, order=order)
        now = self.clock()
        for item in result.items:
            item.health_score = compute_health_score(item, None, now=now)
        return result

    def needs_refresh(self, repository: Repository) -> bool:
        if repository.health_refreshed_at is None:
            return True
        return self.clock() - repository.health_refreshed_at > self.health_refresh_interval

    def view(self, full_name: str) -> Dict[str, Any]:
        """Detail view of one repository.

        Fetches from GitHub (conditionally when cached), creates or updates the
        cached row, restarts its TTL and queues a refresh when the health score
        is stale.
        """
        full_name = full_name.strip().strip("/")
        cached = self.store.get_by_full_name(full_name)
        fetched = self.github.fetch_repository(full_name, etag=cached.etag if cached else None)
        repository, created = self.store.save_fetched(full_name, fetched, now=self.clock())

        refresh_job = None
        if self.needs_refresh(repository):
            refresh_job, _ = self.queue.enqueue_refresh(repository.id)

        latest = self.store.latest_activity(repository.id)
        data = repository.to_dict()
        data["latest_activity"] = latest.to_dict() if latest else None
        data["created"] = created
        data["refresh_job_id"] = refresh_job.id if refresh_job else None
        return data

    def list(self, page: int = 1, per_page: int = 12) -> Dict[str, Any]:
        page = max(page or 1, 1)
        per_page = min(max(per_page or 12, 1), MAX_LIST_PER_PAGE)
        total, rows = self.store.list_by_health(page=page, per_page=per_page)
        items = []
        for repository, latest in rows:
            item = repository.to_dict()
            item["latest_activity"] = latest.to_dict() if latest else None
            items.append(item)
        return {"total": total, "page": page, "per_page": per_page, "items": items}

    def request_refresh(self, repo_id: int) -> Tuple[RefreshJob, bool]:
        """Queue a refresh of a cached repository.

        Returns:
            (job, created): created is False when a refresh was already queued.

        Raises:
            RepositoryNotFound: No cached repository has this id.
        """
        if self.store.get(repo_id) is None:
            raise RepositoryNotFound(repo_id)
        return self.queue.enqueue_refresh(repo_id)

    def health(self, repo_id: int) -> Dict[str, Any]:
        repository = self.store.get(repo_id)
        if repository is None:
            raise RepositoryNotFound(repo_id)
        latest = self.store.latest_activity(repo_id)
        return {
            "repository_id": repository.id,
            "full_name": repository.full_name,
            "health_score": compute_health_score(repository, latest, now=self.clock()),
            "refreshed_at": repository.health_refreshed_at.isoformat() if repository.health_refreshed_at else None,
            "activity": latest.to_dict() if latest else None,
        }

    def cleanup(self) -> CleanupResult:
        return self.sweeper.cleanup_stale_repositories()
