"""Persistence primitives for cached repositories and their activity windows."""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from common.logging import LoggingManager
from goodfirst.clock import day_bounds, utcnow
from goodfirst.github.client import RepositoryNotFound
from goodfirst.github.schemas import FetchResult, RepositoryMetadata
from goodfirst.health import ActivitySummary, compute_health_score
from goodfirst.models.repository import RepoActivity, Repository

logger = LoggingManager.get_logger('app.store')

METADATA_FIELDS = (
    "description",
    "stars",
    "forks",
    "open_issues",
    "default_branch",
    "last_commit_at",
    "has_good_first_issues",
)
SUMMARY_FIELDS = ("prs_opened", "prs_merged", "issues_opened", "issues_comment", "mean_merge_days")
DEFAULT_WINDOWS_KEPT = 30


def _apply_metadata(repo: Repository, metadata: RepositoryMetadata) -> None:
    for field in METADATA_FIELDS:
        setattr(repo, field, getattr(metadata, field))


def _stale_filter(cutoff: datetime):
    return or_(Repository.last_fetched_at < cutoff, Repository.last_fetched_at.is_(None))


class RepositoryStore:
    """Reads and writes Repository and RepoActivity rows.

    Every method opens its own session from the injected factory and closes it
    before returning, so returned rows are detached snapshots.
    """

    def __init__(self, session_factory: sessionmaker, windows_kept: int = DEFAULT_WINDOWS_KEPT):
        if windows_kept < 1:
            raise ValueError("windows_kept must be at least 1")
        self.Session = session_factory
        self.windows_kept = windows_kept

    def _session(self) -> Session:
        return self.Session()

    def get(self, repo_id: int) -> Optional[Repository]:
        session = self._session()
        try:
            return session.get(Repository, repo_id)
        finally:
            session.close()

    def get_by_full_name(self, full_name: str) -> Optional[Repository]:
        session = self._session()
        try:
            return session.query(Repository).filter(Repository.full_name == full_name).first()
        finally:
            session.close()

    def count(self) -> int:
        session = self._session()
        try:
            return session.query(Repository).count()
        finally:
            session.close()

    def latest_activity(self, repo_id: int) -> Optional[RepoActivity]:
        session = self._session()
        try:
            return (session.query(RepoActivity)
                    .filter(RepoActivity.repo_id == repo_id)
                    .order_by(RepoActivity.window_end.desc())
                    .first())
        finally:
            session.close()

    def list_by_health(self, page: int = 1, per_page: int = 12) -> Tuple[int, List[Tuple[Repository, Optional[RepoActivity]]]]:
        """One page of repositories, best health score first, each with its latest window."""
        page = max(page, 1)
        session = self._session()
        try:
            total = session.query(Repository).count()
            repos = (session.query(Repository)
                     .order_by(Repository.health_score.desc(), Repository.id)
                     .offset((page - 1) * per_page)
                     .limit(per_page)
                     .all())
            items = []
            for repo in repos:
                latest = (session.query(RepoActivity)
                          .filter(RepoActivity.repo_id == repo.id)
                          .order_by(RepoActivity.window_end.desc())
                          .first())
                items.append((repo, latest))
            return total, items
        finally:
            session.close()

    def save_fetched(self, full_name: str, fetched: FetchResult, now: Optional[datetime] = None) -> Tuple[Repository, bool]:
        """Record a detail-view fetch.

        Creates the row on first view, copies changed metadata otherwise, and
        always stamps last_fetched_at so the TTL restarts.

        Returns:
            (repository, created)
        """
        now = now or utcnow()
        session = self._session()
        try:
            repo = session.query(Repository).filter(Repository.full_name == full_name).first()
            created = repo is None
            if created:
                if fetched.metadata is None:
                    raise ValueError(f"Cannot create {full_name} from a not-modified response")
                repo = Repository(full_name=full_name)
                _apply_metadata(repo, fetched.metadata)
                repo.health_score = compute_health_score(fetched.metadata, None, now=now)
                session.add(repo)
                logger.info(f"Caching new repository {full_name} (health {repo.health_score})")
            elif fetched.metadata is not None:
                _apply_metadata(repo, fetched.metadata)
                logger.debug(f"Updated cached metadata for {full_name}")
            if fetched.etag:
                repo.etag = fetched.etag
            repo.last_fetched_at = now
            session.commit()
            return repo, created
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def apply_refresh(self, repo_id: int, metadata: Optional[RepositoryMetadata], etag: Optional[str],
                      summary: ActivitySummary, now: Optional[datetime] = None) -> Repository:
        """Write a refresh result in one transaction.

        Updates the metadata (when GitHub sent new data), the etag, the health
        score and health_refreshed_at, and upserts the activity window. Either
        everything commits or nothing does.

        Raises:
            RepositoryNotFound: The row was deleted since the job was queued.
        """
        now = now or utcnow()
        session = self._session()
        try:
            repo = session.get(Repository, repo_id)
            if repo is None:
                raise RepositoryNotFound(repo_id)

            if metadata is not None:
                _apply_metadata(repo, metadata)
            if etag:
                repo.etag = etag
            repo.health_score = compute_health_score(repo, summary, now=now)
            repo.health_refreshed_at = now

            self._upsert_activity(session, repo_id, summary)
            session.commit()
            logger.debug(f"Stored refresh for {repo.full_name}: health {repo.health_score}")
            return repo
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _upsert_activity(self, session: Session, repo_id: int, summary: ActivitySummary) -> RepoActivity:
        # Windows ending on the same UTC day are the same window.
        day_start, day_end = day_bounds(summary.window_end)
        activity = (session.query(RepoActivity)
                    .filter(RepoActivity.repo_id == repo_id,
                            RepoActivity.window_end >= day_start,
                            RepoActivity.window_end < day_end)
                    .order_by(RepoActivity.window_end.desc())
                    .first())
        if activity is None:
            activity = RepoActivity(repo_id=repo_id)
            session.add(activity)
        activity.window_start = summary.window_start
        activity.window_end = summary.window_end
        for field in SUMMARY_FIELDS:
            setattr(activity, field, getattr(summary, field))
        session.flush()
        self._prune_activity(session, repo_id)
        return activity

    def _prune_activity(self, session: Session, repo_id: int) -> int:
        # Keep only the newest windows_kept windows per repository.
        expired_ids = [row.id for row in (session.query(RepoActivity.id)
                                          .filter(RepoActivity.repo_id == repo_id)
                                          .order_by(RepoActivity.window_end.desc(), RepoActivity.id.desc())
                                          .offset(self.windows_kept)
                                          .all())]
        if not expired_ids:
            return 0
        pruned = (session.query(RepoActivity)
                  .filter(RepoActivity.id.in_(expired_ids))
                  .delete(synchronize_session=False))
        logger.debug(f"Pruned {pruned} old activity windows of repository {repo_id}")
        return pruned

    def delete(self, repo_id: int) -> bool:
        """Delete one repository and, by cascade, its activity windows."""
        session = self._session()
        try:
            repo = session.get(Repository, repo_id)
            if repo is None:
                return False
            session.delete(repo)
            session.commit()
            logger.info(f"Deleted repository {repo.full_name}")
            return True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def delete_stale(self, cutoff: datetime) -> int:
        """Delete repositories not fetched since `cutoff` (or never) and their activity."""
        session = self._session()
        try:
            stale_ids = select(Repository.id).where(_stale_filter(cutoff))
            session.query(RepoActivity).filter(RepoActivity.repo_id.in_(stale_ids)).delete(synchronize_session=False)
            deleted = session.query(Repository).filter(_stale_filter(cutoff)).delete(synchronize_session=False)
            session.commit()
            return deleted
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
