"""
Repository health scoring.

compute_health_score ranks a repository 0-100 from its metadata and, when
available, a 30-day activity summary. Recent activity carries 70 of the 100
points and popularity 10. Every term is capped so no single metric dominates.

summarize_activity reduces raw pull request and issue records (GitHub REST
shaped dicts, PyGithub objects or anything exposing the same attribute names)
to the counters the score and the activity window table need.

Neither function raises on missing or malformed input.
"""
import math
import sys
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from goodfirst.clock import to_naive_utc, utcnow

RECENCY_HORIZON_DAYS = 180
ACTIVITY_WINDOW_DAYS = 30

WEIGHT_RECENCY = 30
WEIGHT_STARS = 10
WEIGHT_OPEN_ISSUES = 10
WEIGHT_PRS_OPENED = 25
WEIGHT_PRS_MERGED = 15
WEIGHT_ISSUES_OPENED = 10

OPEN_ISSUES_CAP = 100
PRS_OPENED_CAP = 20
PRS_MERGED_CAP = 10
ISSUES_OPENED_CAP = 10


class ActivitySummary(BaseModel):
    """Aggregate counters for one activity window."""
    window_start: datetime
    window_end: datetime
    prs_opened: int = 0
    prs_merged: int = 0
    issues_opened: int = 0
    issues_comment: int = 0
    mean_merge_days: float = 0.0


def _field(record: Any, name: str, default: Any = None) -> Any:
    if record is None:
        return default
    if isinstance(record, Mapping):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def _number(record: Any, name: str) -> float:
    value = _field(record, name, 0)
    try:
        number = float(value)
    except OverflowError:
        # Integers too large for a float saturate every capped term.
        return sys.float_info.max if value > 0 else 0.0
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _capped(value: float, cap: float) -> float:
    return min(value / cap, 1.0)


def _recency(last_commit_at: Any, now: datetime) -> float:
    last_commit = to_naive_utc(last_commit_at)
    if last_commit is None:
        return 0.0
    age_days = (now - last_commit).total_seconds() / 86400
    return max(0.0, min(1.0, 1 - age_days / RECENCY_HORIZON_DAYS))


def compute_health_score(repo: Any, activity_summary: Any = None, now: Optional[datetime] = None) -> int:
    """
    Score a repository between 0 and 100.

    Args:
        repo: Anything with stars, open_issues and last_commit_at
            (ORM row, pydantic model or mapping). None scores 0.
        activity_summary: ActivitySummary, RepoActivity row, mapping or None.
            When None the three activity terms contribute nothing.
        now: Reference time, naive UTC. Defaults to the current time.

    Returns:
        int: The rounded score, clamped to [0, 100].
    """
    if repo is None:
        return 0
    now = now or utcnow()

    stars = _number(repo, "stars")
    open_issues = _number(repo, "open_issues")

    score = (
        WEIGHT_RECENCY * _recency(_field(repo, "last_commit_at"), now)
        + WEIGHT_STARS * min(math.log10(stars + 1) / 4, 1.0)
        + WEIGHT_OPEN_ISSUES * _capped(open_issues, OPEN_ISSUES_CAP)
        + WEIGHT_PRS_OPENED * _capped(_number(activity_summary, "prs_opened"), PRS_OPENED_CAP)
        + WEIGHT_PRS_MERGED * _capped(_number(activity_summary, "prs_merged"), PRS_MERGED_CAP)
        + WEIGHT_ISSUES_OPENED * _capped(_number(activity_summary, "issues_opened"), ISSUES_OPENED_CAP)
    )
    # Half-up rounding; round() would go to even on .5
    return max(0, min(100, int(math.floor(score + 0.5))))


def summarize_activity(pull_requests: Optional[Iterable[Any]] = None,
                       issues: Optional[Iterable[Any]] = None,
                       now: Optional[datetime] = None,
                       window_days: int = ACTIVITY_WINDOW_DAYS) -> ActivitySummary:
    """
    Reduce raw pull requests and issues to an ActivitySummary.

    The window is [now - window_days, now] at call time. The records are
    expected to already be scoped to that window by the caller.
    """
    window_end = now or utcnow()
    window_start = window_end - timedelta(days=window_days)
    pulls = list(pull_requests or [])
    issue_records = list(issues or [])

    prs_merged = 0
    merge_days = []
    for pull in pulls:
        merged_at = to_naive_utc(_field(pull, "merged_at"))
        if merged_at is None:
            continue
        prs_merged += 1
        created_at = to_naive_utc(_field(pull, "created_at"))
        if created_at is not None:
            merge_days.append((merged_at - created_at).total_seconds() / 86400)

    # The issues endpoint returns pull requests too; they carry a pull_request marker.
    real_issues = [issue for issue in issue_records if not _field(issue, "pull_request")]
    comments = sum(int(_number(issue, "comments")) for issue in issue_records)

    return ActivitySummary(
        window_start=window_start,
        window_end=window_end,
        prs_opened=len(pulls),
        prs_merged=prs_merged,
        issues_opened=len(real_issues),
        issues_comment=comments,
        mean_merge_days=sum(merge_days) / len(merge_days) if merge_days else 0.0,
    )
