"""GitHub API client implementation."""
import os
import re
import time
from datetime import datetime, timezone
from functools import wraps
from itertools import islice
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from github import Auth, Github, GithubException, RateLimitExceededException, UnknownObjectException

from common.logging import LoggingManager
from goodfirst.clock import to_naive_utc
from goodfirst.github.schemas import ActivityData, FetchResult, RepositoryMetadata, RepositorySummary, SearchPage

logger = LoggingManager.get_logger('app.github_client')

RATE_LIMIT_STATUSES = (403, 429)
FALLBACK_DELAY_SECONDS = 3.0
MAX_SEARCH_RESULTS = 1000  # GitHub search API hard limit
DEFAULT_PER_PAGE = 100


class APILimitError(Exception):
    """Raised once the rate-limit retries for a call are used up."""
    def __init__(self, message: str, reset_time_unix: Optional[int] = None, reset_time_datetime: Optional[datetime] = None):
        super().__init__(message)
        self.message = message
        self.reset_time_unix = reset_time_unix
        if reset_time_datetime and reset_time_datetime.tzinfo is None:
            self.reset_time_datetime = reset_time_datetime.replace(tzinfo=timezone.utc)
        else:
            self.reset_time_datetime = reset_time_datetime

        if reset_time_unix and not reset_time_datetime:
            self.reset_time_datetime = datetime.fromtimestamp(reset_time_unix, tz=timezone.utc)
        elif reset_time_datetime and not reset_time_unix:
            self.reset_time_unix = int(self.reset_time_datetime.timestamp())


class RepositoryNotFound(Exception):
    """The repository does not exist upstream or in the cache."""
    def __init__(self, identifier: Any):
        super().__init__(f"Repository {identifier} not found")
        self.identifier = identifier


def _header(exc: GithubException, name: str) -> Optional[str]:
    headers = getattr(exc, "headers", None) or {}
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def is_rate_limit_error(exc: Exception) -> bool:
    """True for primary and secondary rate-limit responses."""
    if isinstance(exc, RateLimitExceededException):
        return True
    if not isinstance(exc, GithubException) or exc.status not in RATE_LIMIT_STATUSES:
        return False
    if exc.status == 429:
        return True
    # 403 also means "forbidden"; only treat it as throttling when GitHub says so.
    return _header(exc, "retry-after") is not None or _header(exc, "x-ratelimit-remaining") == "0"


def retry_delay_seconds(exc: GithubException, attempt: int, fallback_delay: float = FALLBACK_DELAY_SECONDS) -> float:
    """Server-supplied Retry-After when present, else attempt * fallback_delay."""
    retry_after = _header(exc, "retry-after")
    if retry_after:
        try:
            seconds = float(retry_after)
            if seconds > 0:
                return seconds
        except ValueError:
            pass
    return attempt * fallback_delay


def _reset_time_from(exc: GithubException) -> Optional[int]:
    reset = _header(exc, "x-ratelimit-reset")
    try:
        return int(reset) if reset else None
    except ValueError:
        return None


def retry_on_rate_limit(max_attempts: Optional[int] = None, fallback_delay: float = FALLBACK_DELAY_SECONDS):
    """Retry a GitHubClient method when GitHub throttles it.

    Args:
        max_attempts: Total attempts including the first call. Defaults to the
            client's `max_attempts`.
        fallback_delay: Base delay when GitHub sends no Retry-After; the wait
            grows as attempt * fallback_delay.

    Raises:
        APILimitError: When the last attempt is still rate limited.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Any:
            attempts = max_attempts or getattr(self, "max_attempts", 3)
            for attempt in range(1, attempts + 1):
                try:
                    return func(self, *args, **kwargs)
                except GithubException as e:
                    if not is_rate_limit_error(e):
                        raise
                    if attempt >= attempts:
                        logger.error(f"{func.__name__}: still rate limited after {attempts} attempts: {e}")
                        raise APILimitError(
                            f"GitHub API rate limit exceeded after {attempts} attempts",
                            reset_time_unix=_reset_time_from(e),
                        ) from e
                    delay = retry_delay_seconds(e, attempt, fallback_delay)
                    logger.warning(f"{func.__name__}: rate limited (attempt {attempt}/{attempts}). "
                                   f"Retrying in {delay:.0f} seconds...")
                    time.sleep(delay)
            return None

        return wrapper

    return decorator


def normalize_search_query(raw_query: Optional[str]) -> str:
    """Add the beginner-friendly defaults unless the query sets them itself."""
    trimmed = (raw_query or "").strip()
    parts = [trimmed] if trimmed else []
    if not re.search(r"\bgood-first-issues:", trimmed):
        parts.append("good-first-issues:>0")
    if not re.search(r"\barchived:", trimmed):
        parts.append("archived:false")
    return " ".join(parts).strip()


def _metadata_from(repo) -> Dict[str, Any]:
    open_issues = repo.open_issues_count or 0
    return {
        "id": repo.id,
        "full_name": repo.full_name,
        "description": repo.description,
        "stars": repo.stargazers_count or 0,
        "forks": repo.forks_count or 0,
        "open_issues": open_issues,
        "default_branch": repo.default_branch,
        "last_commit_at": to_naive_utc(repo.pushed_at),
        "has_good_first_issues": open_issues > 0,
    }


class GitHubClient:
    """Client for the parts of the GitHub API the cache depends on."""

    def __init__(self, token: Optional[str] = None, timeout: int = 10, max_attempts: int = 3,
                 activity_max_items: int = 300, load_env: bool = True):
        """Initialize the GitHub client.

        Args:
            token: Personal access token. Falls back to GITHUB_TOKEN; without one
                the client runs unauthenticated at a lower rate limit.
            timeout: Per-request timeout in seconds.
            max_attempts: Attempts per call when rate limited.
            activity_max_items: Cap on each activity list fetched for a repository.
            load_env: Whether to load a .env file first.
        """
        if load_env:
            load_dotenv()
        self.token = token or os.getenv("GITHUB_TOKEN")
        self.max_attempts = max_attempts
        self.activity_max_items = activity_max_items

        if self.token:
            logger.info("Initializing authenticated GitHub client")
            auth = Auth.Token(self.token)
        else:
            logger.warning("GITHUB_TOKEN not set; using unauthenticated GitHub access (60 requests/hour)")
            auth = None
        # retry=None: rate limits are handled by retry_on_rate_limit, not PyGithub.
        self.gh = Github(auth=auth, per_page=DEFAULT_PER_PAGE, timeout=timeout, retry=None)

    @classmethod
    def from_config(cls, config) -> "GitHubClient":
        return cls(
            token=config.github_token,
            timeout=config.github_timeout_seconds,
            max_attempts=config.github_max_attempts,
            activity_max_items=config.activity_max_items,
            load_env=False,
        )

    def get_rate_limit(self) -> dict:
        """Remaining quota as last reported by GitHub."""
        remaining, limit = self.gh.rate_limiting
        reset = self.gh.rate_limiting_resettime
        info = {
            "remaining": remaining,
            "limit": limit,
            "reset_time": datetime.fromtimestamp(reset, tz=timezone.utc) if reset else None,
        }
        logger.debug(f"Rate limit info: {info}")
        return info

    def _quota_hints(self) -> Dict[str, Optional[int]]:
        remaining, _ = self.gh.rate_limiting
        reset = self.gh.rate_limiting_resettime
        return {
            "rate_limit_remaining": remaining if isinstance(remaining, int) else None,
            "rate_limit_reset": reset if isinstance(reset, int) else None,
        }

    @retry_on_rate_limit()
    def search_repositories(self, query: str, page: int = 1, per_page: int = 10,
                            sort: Optional[str] = "updated", order: Optional[str] = "desc") -> SearchPage:
        """Run one page of a repository search.

        `sort="best-match"` (or None) lets GitHub rank by relevance and sends
        no sort/order parameters.
        """
        normalized = normalize_search_query(query)
        kwargs = {}
        if sort and sort != "best-match":
            kwargs["sort"] = sort
            kwargs["order"] = order or "desc"
        logger.info(f"Searching repositories: '{normalized}' page={page} per_page={per_page} {kwargs}")

        # The page size lives on the shared requester; other calls page at DEFAULT_PER_PAGE.
        self.gh.per_page = per_page
        try:
            results = self.gh.search_repositories(query=normalized, **kwargs)
            if page * per_page > MAX_SEARCH_RESULTS:
                logger.info(f"Page {page} is past the first {MAX_SEARCH_RESULTS} search results; returning no items")
                return SearchPage(total_count=results.totalCount, items=[])

            items = [
                RepositorySummary(**_metadata_from(repo), language=repo.language, html_url=repo.html_url)
                for repo in results.get_page(page - 1)
            ]
            total = results.totalCount
        finally:
            self.gh.per_page = DEFAULT_PER_PAGE
        logger.debug(f"Search '{normalized}' returned {len(items)} items of {total}")
        return SearchPage(total_count=total, items=items)

    @retry_on_rate_limit()
    def fetch_repository(self, full_name: str, etag: Optional[str] = None) -> FetchResult:
        """Fetch repository metadata, conditionally on `etag`.

        Raises:
            RepositoryNotFound: GitHub answered 404.
        """
        logger.info(f"Fetching repository {full_name} (etag={'yes' if etag else 'no'})")
        repo = self.gh.get_repo(full_name, lazy=True)
        headers = {"If-None-Match": etag} if etag else None
        try:
            changed = repo.update(additional_headers=headers)
        except UnknownObjectException as e:
            raise RepositoryNotFound(full_name) from e

        if not changed:
            logger.debug(f"{full_name} not modified since last fetch")
            return FetchResult(not_modified=True, etag=etag, **self._quota_hints())

        return FetchResult(
            etag=repo.etag,
            metadata=RepositoryMetadata(**_metadata_from(repo)),
            **self._quota_hints(),
        )

    @retry_on_rate_limit()
    def fetch_activity(self, full_name: str, since: datetime) -> ActivityData:
        """Fetch commits, issues and pull requests touched since `since`.

        Pull requests come back most recently updated first; collection stops
        at the first one last updated before `since`.
        """
        since = to_naive_utc(since)
        logger.info(f"Fetching activity for {full_name} since {since.isoformat()}")
        repo = self.gh.get_repo(full_name, lazy=True)
        limit = self.activity_max_items

        try:
            commits = [
                {"sha": commit.sha}
                for commit in islice(repo.get_commits(since=since), limit)
            ]
            issues = [
                {
                    "number": issue.number,
                    "created_at": to_naive_utc(issue.created_at),
                    "comments": issue.comments or 0,
                    "pull_request": issue.pull_request is not None,
                }
                for issue in islice(repo.get_issues(state="all", since=since), limit)
            ]
            pulls = []
            for pull in repo.get_pulls(state="all", sort="updated", direction="desc"):
                updated_at = to_naive_utc(pull.updated_at)
                if updated_at is not None and updated_at < since:
                    break
                pulls.append({
                    "number": pull.number,
                    "created_at": to_naive_utc(pull.created_at),
                    "merged_at": to_naive_utc(pull.merged_at),
                    "updated_at": updated_at,
                })
                if len(pulls) >= limit:
                    break
        except UnknownObjectException as e:
            raise RepositoryNotFound(full_name) from e

        logger.debug(f"{full_name}: {len(commits)} commits, {len(issues)} issues, {len(pulls)} pull requests")
        return ActivityData(since=since, commits=commits, issues=issues, pulls=pulls)
