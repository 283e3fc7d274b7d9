"""Durable FIFO queue of refresh jobs."""
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from common.logging import LoggingManager
from goodfirst.clock import utcnow
from goodfirst.models.refresh_job import (ACTIVE_STATUSES, KIND_REFRESH_REPO, STATUS_COMPLETED, STATUS_FAILED,
                                          STATUS_PROCESSING, STATUS_QUEUED, RefreshJob)

logger = LoggingManager.get_logger('app.job_queue')

DEFAULT_MAX_ATTEMPTS = 3


class JobNotFound(Exception):
    pass


class JobQueue:
    """Enqueue, claim and transition RefreshJob rows.

    Each transition is a single short transaction.
    """

    def __init__(self, session_factory: sessionmaker, max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 clock: Callable = utcnow):
        self.Session = session_factory
        self.max_attempts = max_attempts
        self.clock = clock

    def _get_session(self) -> Session:
        return self.Session()

    def pending_for(self, repo_id: int) -> Optional[RefreshJob]:
        """The queued or processing refresh job for `repo_id`, if any."""
        db = self._get_session()
        try:
            return self._pending_for(db, repo_id)
        finally:
            db.close()

    @staticmethod
    def _pending_for(db: Session, repo_id: int) -> Optional[RefreshJob]:
        return (db.query(RefreshJob)
                .filter(RefreshJob.kind == KIND_REFRESH_REPO,
                        RefreshJob.repo_id == repo_id,
                        RefreshJob.status.in_(ACTIVE_STATUSES))
                .order_by(RefreshJob.created_at, RefreshJob.id)
                .first())

    def enqueue_refresh(self, repo_id: int) -> Tuple[RefreshJob, bool]:
        """Queue a refresh for `repo_id` unless one is already queued or running.

        Returns:
            (job, created): the new job, or the existing active one with created=False.
        """
        db = self._get_session()
        try:
            existing = self._pending_for(db, repo_id)
            if existing:
                logger.debug(f"Refresh for repository {repo_id} already {existing.status} as job {existing.id}")
                return existing, False

            job = RefreshJob(
                kind=KIND_REFRESH_REPO,
                payload={"repo_id": repo_id},
                repo_id=repo_id,
                status=STATUS_QUEUED,
                attempts=0,
                created_at=self.clock(),
            )
            db.add(job)
            db.commit()
            logger.info(f"Queued refresh job {job.id} for repository {repo_id}")
            return job, True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def claim_next(self) -> Optional[RefreshJob]:
        """Move the oldest queued job to processing and return it."""
        db = self._get_session()
        try:
            job = (db.query(RefreshJob)
                   .filter(RefreshJob.status == STATUS_QUEUED)
                   .order_by(RefreshJob.created_at, RefreshJob.id)
                   .first())
            if job is None:
                return None
            job.status = STATUS_PROCESSING
            job.attempts = (job.attempts or 0) + 1
            job.last_error = None
            job.started_at = self.clock()
            db.commit()
            return job
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def requeue_stale_processing(self) -> int:
        """Put jobs left in processing by a worker that died back on the queue.

        Only safe while no worker is running; the attempt already counted stays counted.
        """
        db = self._get_session()
        try:
            requeued = (db.query(RefreshJob)
                        .filter(RefreshJob.status == STATUS_PROCESSING)
                        .update({RefreshJob.status: STATUS_QUEUED}, synchronize_session=False))
            db.commit()
            if requeued:
                logger.warning(f"Requeued {requeued} jobs left in processing by a previous worker")
            return requeued
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_completed(self, job_id: int) -> RefreshJob:
        db = self._get_session()
        try:
            job = self._require(db, job_id)
            job.status = STATUS_COMPLETED
            job.last_error = None
            job.completed_at = self.clock()
            db.commit()
            return job
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_failed(self, job_id: int, message: str) -> RefreshJob:
        """Record a failed attempt: back to queued while attempts remain, else failed."""
        db = self._get_session()
        try:
            job = self._require(db, job_id)
            job.last_error = message
            if job.attempts >= self.max_attempts:
                job.status = STATUS_FAILED
                job.completed_at = self.clock()
            else:
                job.status = STATUS_QUEUED
            db.commit()
            return job
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _require(db: Session, job_id: int) -> RefreshJob:
        job = db.get(RefreshJob, job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        return job

    def get(self, job_id: int) -> Optional[RefreshJob]:
        db = self._get_session()
        try:
            return db.get(RefreshJob, job_id)
        finally:
            db.close()

    def list(self, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[RefreshJob]:
        """Jobs, newest first."""
        db = self._get_session()
        try:
            query = db.query(RefreshJob)
            if status:
                query = query.filter(RefreshJob.status == status)
            return query.order_by(RefreshJob.created_at.desc(), RefreshJob.id.desc()).offset(offset).limit(limit).all()
        finally:
            db.close()

    def counts(self) -> Dict[str, int]:
        db = self._get_session()
        try:
            rows = db.query(RefreshJob.status, func.count(RefreshJob.id)).group_by(RefreshJob.status).all()
            counts = {STATUS_QUEUED: 0, STATUS_PROCESSING: 0, STATUS_COMPLETED: 0, STATUS_FAILED: 0}
            counts.update({status: count for status, count in rows})
            return counts
        finally:
            db.close()
