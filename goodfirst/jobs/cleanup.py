"""TTL sweep of cached repositories."""
from datetime import datetime, timedelta
from typing import Callable

from pydantic import BaseModel

from common.logging import LoggingManager
from goodfirst.clock import utcnow
from goodfirst.store import RepositoryStore

logger = LoggingManager.get_logger('app.cleanup')

DEFAULT_TTL = timedelta(days=7)


class CleanupResult(BaseModel):
    deleted: int
    cutoff: datetime


class CleanupSweeper:
    """Deletes repositories whose last fetch is older than the TTL, or missing."""

    def __init__(self, store: RepositoryStore, ttl: timedelta = DEFAULT_TTL, clock: Callable = utcnow):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    @classmethod
    def from_config(cls, config, store: RepositoryStore) -> "CleanupSweeper":
        return cls(store, ttl=config.repo_ttl)

    def cleanup_stale_repositories(self) -> CleanupResult:
        cutoff = self.clock() - self.ttl
        try:
            deleted = self.store.delete_stale(cutoff)
        except Exception as e:
            logger.error(f"Error cleaning up repositories: {e}", exc_info=True)
            raise
        logger.info(f"Deleted {deleted} stale repositories not fetched since {cutoff.isoformat()}")
        return CleanupResult(deleted=deleted, cutoff=cutoff)
