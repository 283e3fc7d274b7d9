"""Tests for the health score and activity summary."""
from datetime import timedelta

import pytest

from goodfirst.health import ActivitySummary, compute_health_score, summarize_activity
from goodfirst.models.repository import RepoActivity

from conftest import NOW


def test_popular_repo_without_activity_scores_fifty():
    repo = {"stars": 10_000_000, "open_issues": 1000, "last_commit_at": NOW}
    assert compute_health_score(repo, None, now=NOW) == 50


def test_empty_repo_scores_zero():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": None}
    assert compute_health_score(repo, None, now=NOW) == 0


def test_missing_repo_scores_zero():
    assert compute_health_score(None, None, now=NOW) == 0


def test_missing_fields_default_to_zero():
    assert compute_health_score({}, {}, now=NOW) == 0


def test_everything_saturated_scores_hundred():
    repo = {"stars": 50_000, "open_issues": 500, "last_commit_at": NOW}
    summary = {"prs_opened": 40, "prs_merged": 25, "issues_opened": 30}
    assert compute_health_score(repo, summary, now=NOW) == 100


def test_recency_decays_linearly():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": NOW - timedelta(days=90)}
    assert compute_health_score(repo, None, now=NOW) == 15


def test_commit_older_than_horizon_gives_no_recency():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": NOW - timedelta(days=400)}
    assert compute_health_score(repo, None, now=NOW) == 0


def test_future_commit_is_capped():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": NOW + timedelta(days=10)}
    assert compute_health_score(repo, None, now=NOW) == 30


def test_iso_string_timestamps_are_accepted():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": "2026-10-01T12:00:00Z"}
    assert compute_health_score(repo, None, now=NOW) == 30


def test_activity_terms():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": None}
    summary = ActivitySummary(window_start=NOW - timedelta(days=30), window_end=NOW,
                              prs_opened=10, prs_merged=5, issues_opened=5)
    # 25 * 0.5 + 15 * 0.5 + 10 * 0.5
    assert compute_health_score(repo, summary, now=NOW) == 25


def test_orm_activity_row_is_accepted():
    repo = {"stars": 0, "open_issues": 0, "last_commit_at": None}
    activity = RepoActivity(prs_opened=20, prs_merged=10, issues_opened=10)
    assert compute_health_score(repo, activity, now=NOW) == 50


def test_without_summary_never_exceeds_sixty():
    repo = {"stars": 10**9, "open_issues": 10**6, "last_commit_at": NOW}
    assert compute_health_score(repo, None, now=NOW) <= 60


@pytest.mark.parametrize("stars,open_issues,age_days,prs", [
    (0, 0, None, 0),
    (1, 1, 0, 1),
    (999, 37, 45, 3),
    (10**7, 10**5, 1, 10**4),
    (-5, -1, 2000, -3),
])
def test_score_is_int_in_range(stars, open_issues, age_days, prs):
    last_commit = NOW - timedelta(days=age_days) if age_days is not None else None
    repo = {"stars": stars, "open_issues": open_issues, "last_commit_at": last_commit}
    summary = {"prs_opened": prs, "prs_merged": prs, "issues_opened": prs}
    score = compute_health_score(repo, summary, now=NOW)
    assert isinstance(score, int)
    assert 0 <= score <= 100


def test_summary_window_is_last_thirty_days():
    summary = summarize_activity([], [], now=NOW)
    assert summary.window_end == NOW
    assert summary.window_start == NOW - timedelta(days=30)


def test_summary_counts_pulls_and_merges():
    pulls = [
        {"created_at": NOW - timedelta(days=3), "merged_at": NOW - timedelta(days=1)},
        {"created_at": NOW - timedelta(days=4), "merged_at": NOW},
        {"created_at": NOW - timedelta(days=1), "merged_at": None},
    ]
    summary = summarize_activity(pulls, [], now=NOW)
    assert summary.prs_opened == 3
    assert summary.prs_merged == 2
    assert summary.mean_merge_days == pytest.approx(3.0)


def test_issue_records_for_pull_requests_are_not_counted():
    issues = [{"pull_request": {"url": "x"}, "comments": 1} for _ in range(7)]
    summary = summarize_activity([], issues, now=NOW)
    assert summary.issues_opened == 0


def test_issues_and_comments():
    issues = [
        {"comments": 3},
        {"comments": 2, "pull_request": None},
        {"comments": None},
        {"pull_request": True, "comments": 5},
    ]
    summary = summarize_activity([], issues, now=NOW)
    assert summary.issues_opened == 3
    assert summary.issues_comment == 10


def test_mean_merge_days_is_zero_without_complete_pulls():
    pulls = [
        {"created_at": NOW - timedelta(days=2), "merged_at": None},
        {"created_at": None, "merged_at": NOW},
        {},
    ]
    summary = summarize_activity(pulls, [], now=NOW)
    assert summary.mean_merge_days == 0.0
    assert summary.prs_merged == 1


def test_summary_accepts_missing_inputs():
    summary = summarize_activity(None, None, now=NOW)
    assert summary.prs_opened == 0
    assert summary.issues_opened == 0
    assert summary.mean_merge_days == 0.0


def test_integers_too_large_for_float_saturate():
    repo = {"stars": 10**400, "open_issues": 10**400, "last_commit_at": None}
    assert compute_health_score(repo, {"prs_opened": 10**400}, now=NOW) == 45


def test_infinite_values_count_as_zero():
    repo = {"stars": float("inf"), "open_issues": float("-inf"), "last_commit_at": None}
    assert compute_health_score(repo, {"prs_merged": float("nan")}, now=NOW) == 0

    summary = summarize_activity([], [{"comments": float("inf")}, {"comments": 2}], now=NOW)
    assert summary.issues_comment == 2
    assert summary.issues_opened == 2


def test_huge_comment_counts_do_not_raise():
    summary = summarize_activity([], [{"comments": 10**400}], now=NOW)
    assert summary.issues_comment > 0
