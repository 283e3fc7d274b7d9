"""Wires the components together for one process."""
import time
from typing import Optional

from sqlalchemy.orm import sessionmaker

from common.logging import LoggingManager
from goodfirst.config import Config
from goodfirst.db import create_session_factory
from goodfirst.github.client import GitHubClient
from goodfirst.jobs.cleanup import CleanupSweeper
from goodfirst.jobs.processor import JobProcessor
from goodfirst.jobs.queue import JobQueue
from goodfirst.jobs.scheduler import PeriodicScheduler
from goodfirst.ratelimit import TokenBucketLimiter
from goodfirst.services.repositories import RepositoryService
from goodfirst.store import RepositoryStore

logger = LoggingManager.get_logger('app.main')


class Application:
    """Store, queue, GitHub client, processor, sweeper and service sharing one database."""

    def __init__(self, config: Config, session_factory: Optional[sessionmaker] = None,
                 github: Optional[GitHubClient] = None):
        self.config = config
        self.session_factory = session_factory or create_session_factory(config.database_url)
        self.github = github or GitHubClient.from_config(config)
        self.store = RepositoryStore(self.session_factory, windows_kept=config.activity_windows_kept)
        self.queue = JobQueue(self.session_factory, max_attempts=config.job_max_attempts)
        self.processor = JobProcessor.from_config(config, self.store, self.queue, self.github)
        self.sweeper = CleanupSweeper.from_config(config, self.store)
        self.limiter = TokenBucketLimiter(config.search_rate_limit, config.search_rate_interval_seconds)
        self.service = RepositoryService(
            self.store, self.queue, self.github, self.sweeper,
            limiter=self.limiter,
            health_refresh_interval=config.health_refresh_interval,
        )
        self.job_scheduler = PeriodicScheduler("job-processor", self.processor.run_once, config.job_poll_seconds)
        self.cleanup_scheduler = PeriodicScheduler(
            "cleanup", self.sweeper.cleanup_stale_repositories, config.cleanup_interval_seconds)

    def start_background(self) -> None:
        logger.info(f"Starting background workers (TTL: {self.config.repo_ttl_days} days, "
                    f"cleanup every {self.config.cleanup_interval_hours}h, "
                    f"job poll every {self.config.job_poll_seconds}s)")
        self.cleanup_scheduler.start()
        self.job_scheduler.start()

    def stop_background(self, timeout: Optional[float] = 30) -> None:
        self.job_scheduler.stop(timeout)
        self.cleanup_scheduler.stop(timeout)

    def run_forever(self, sleep_seconds: float = 1.0) -> None:
        """Run the background workers until interrupted."""
        self.start_background()
        try:
            while True:
                time.sleep(sleep_seconds)
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.stop_background()
