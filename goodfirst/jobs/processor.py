"""Drains the refresh queue: refetches repositories and recomputes their health."""
from datetime import timedelta
from typing import Callable, Dict

from common.logging import LoggingManager
from goodfirst.clock import utcnow
from goodfirst.github.client import GitHubClient, RepositoryNotFound
from goodfirst.health import ACTIVITY_WINDOW_DAYS, summarize_activity
from goodfirst.jobs.queue import JobQueue
from goodfirst.models.refresh_job import KIND_REFRESH_REPO, STATUS_COMPLETED, STATUS_FAILED, RefreshJob
from goodfirst.models.repository import Repository
from goodfirst.store import RepositoryStore

logger = LoggingManager.get_logger('app.job_processor')


class UnknownJobKind(Exception):
    pass


class JobProcessor:
    """Single worker that processes queued jobs one at a time.

    run_once() keeps claiming the oldest queued job until none is left. A
    failed attempt goes back on the queue and is picked up again in the same
    drain until the queue's attempt limit marks it failed.
    """

    def __init__(self, store: RepositoryStore, queue: JobQueue, github: GitHubClient,
                 window_days: int = ACTIVITY_WINDOW_DAYS, clock: Callable = utcnow):
        self.store = store
        self.queue = queue
        self.github = github
        self.window_days = window_days
        self.clock = clock
        self._recovered = False
        self.handlers: Dict[str, Callable[[RefreshJob], None]] = {
            KIND_REFRESH_REPO: self._handle_refresh_repo,
        }

    @classmethod
    def from_config(cls, config, store: RepositoryStore, queue: JobQueue, github: GitHubClient) -> "JobProcessor":
        return cls(store, queue, github, window_days=config.activity_window_days)

    def run_once(self) -> Dict[str, int]:
        """Process every queued job. Returns counters for this drain."""
        stats = {"processed": 0, "completed": 0, "requeued": 0, "failed": 0}
        if not self._recovered:
            # One worker per process: anything still processing belongs to a dead one.
            self.queue.requeue_stale_processing()
            self._recovered = True
        queued = self.queue.counts().get("queued", 0)
        if queued:
            logger.info(f"Found {queued} queued jobs to process")

        while True:
            job = self.queue.claim_next()
            if job is None:
                break
            status = self.process(job)
            stats["processed"] += 1
            if status == STATUS_COMPLETED:
                stats["completed"] += 1
            elif status == STATUS_FAILED:
                stats["failed"] += 1
            else:
                stats["requeued"] += 1

        if stats["processed"]:
            logger.info(f"Finished processing queued jobs: {stats}")
        else:
            logger.debug("No queued jobs")
        return stats

    def process(self, job: RefreshJob) -> str:
        """Run one claimed job and record the outcome. Returns the job's new status."""
        logger.info(f"Processing job {job.id} ({job.kind}), attempt {job.attempts}")
        try:
            handler = self.handlers.get(job.kind)
            if handler is None:
                raise UnknownJobKind(f"Unknown job kind: {job.kind}")
            handler(job)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            updated = self.queue.mark_failed(job.id, message)
            if updated.status == STATUS_FAILED:
                logger.error(f"Job {job.id} failed permanently after {updated.attempts} attempts: {message}")
            else:
                logger.warning(f"Job {job.id} failed (attempt {updated.attempts}), will retry: {message}")
            return updated.status

        self.queue.mark_completed(job.id)
        logger.info(f"Job {job.id} completed")
        return STATUS_COMPLETED

    def _handle_refresh_repo(self, job: RefreshJob) -> None:
        repo_id = (job.payload or {}).get("repo_id", job.repo_id)
        if not repo_id:
            raise ValueError("Job payload missing repo_id")
        self.refresh_repository(repo_id)

    def refresh_repository(self, repo_id: int) -> Repository:
        """Refetch one repository and store its new health score and activity window.

        Metadata is fetched conditionally on the stored etag; activity is
        always fetched because it changes independently of the metadata.

        Raises:
            RepositoryNotFound: The cached row no longer exists.
        """
        repository = self.store.get(repo_id)
        if repository is None:
            raise RepositoryNotFound(repo_id)

        fetched = self.github.fetch_repository(repository.full_name, etag=repository.etag)

        now = self.clock()
        since = now - timedelta(days=self.window_days)
        activity = self.github.fetch_activity(repository.full_name, since=since)
        summary = summarize_activity(activity.pulls, activity.issues, now=now, window_days=self.window_days)

        updated = self.store.apply_refresh(
            repo_id,
            metadata=None if fetched.not_modified else fetched.metadata,
            etag=fetched.etag,
            summary=summary,
            now=now,
        )
        logger.info(f"Repository {updated.full_name} refreshed: health {updated.health_score}, "
                    f"{summary.prs_opened} PRs opened, {summary.prs_merged} merged, "
                    f"{summary.issues_opened} issues opened")
        return updated
