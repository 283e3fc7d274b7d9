"""Tests for the job processor and the refresh_repo handler."""
from datetime import timedelta
from unittest.mock import patch

import pytest

from goodfirst.github.schemas import FetchResult
from goodfirst.health import compute_health_score, summarize_activity
from goodfirst.jobs.processor import JobProcessor
from goodfirst.models.refresh_job import RefreshJob
from goodfirst.models.repository import RepoActivity
from goodfirst.store import RepositoryStore

from conftest import NOW, make_metadata


def make_processor(store, queue, github, now=NOW):
    return JobProcessor(store, queue, github, clock=lambda: now)


@pytest.fixture
def processor(store, queue, fake_github):
    return make_processor(store, queue, fake_github)


@pytest.fixture
def stale_repo(add_repository):
    return add_repository(last_fetched_at=NOW - timedelta(days=2))


def activity_rows(session_factory, repo_id):
    session = session_factory()
    try:
        return session.query(RepoActivity).filter(RepoActivity.repo_id == repo_id).all()
    finally:
        session.close()


def test_run_once_on_empty_queue(processor, fake_github):
    assert processor.run_once() == {"processed": 0, "completed": 0, "requeued": 0, "failed": 0}
    fake_github.fetch_repository.assert_not_called()


def test_refresh_updates_repository_and_activity(processor, store, queue, fake_github, stale_repo,
                                                 session_factory):
    job, _ = queue.enqueue_refresh(stale_repo.id)

    stats = processor.run_once()

    assert stats == {"processed": 1, "completed": 1, "requeued": 0, "failed": 0}
    fake_github.fetch_repository.assert_called_once_with("octo/hello", etag='"v1"')
    fake_github.fetch_activity.assert_called_once_with("octo/hello", since=NOW - timedelta(days=30))

    refreshed = store.get(stale_repo.id)
    assert refreshed.stars == 250
    assert refreshed.open_issues == 30
    assert refreshed.etag == '"v2"'
    assert refreshed.health_refreshed_at == NOW
    # Only the detail view restarts the TTL
    assert refreshed.last_fetched_at == NOW - timedelta(days=2)

    activity = fake_github.fetch_activity.return_value
    summary = summarize_activity(activity.pulls, activity.issues, now=NOW)
    assert refreshed.health_score == compute_health_score(make_metadata(), summary, now=NOW)

    rows = activity_rows(session_factory, stale_repo.id)
    assert len(rows) == 1
    assert rows[0].window_start == NOW - timedelta(days=30)
    assert rows[0].window_end == NOW
    assert rows[0].prs_opened == 2
    assert rows[0].prs_merged == 1
    assert rows[0].issues_opened == 1
    assert rows[0].issues_comment == 5
    assert rows[0].mean_merge_days == pytest.approx(2.0)

    done = queue.get(job.id)
    assert done.status == "completed"
    assert done.attempts == 1


def test_not_modified_keeps_metadata_but_rescores(processor, store, queue, fake_github, stale_repo):
    fake_github.fetch_repository.return_value = FetchResult(not_modified=True, etag='"v1"')
    queue.enqueue_refresh(stale_repo.id)

    processor.run_once()

    refreshed = store.get(stale_repo.id)
    assert refreshed.stars == 120
    assert refreshed.etag == '"v1"'
    assert refreshed.health_refreshed_at == NOW
    assert refreshed.health_score != 20
    fake_github.fetch_activity.assert_called_once()


def test_transient_failures_are_retried_within_one_drain(processor, queue, fake_github, stale_repo):
    activity = fake_github.fetch_activity.return_value
    fake_github.fetch_activity.side_effect = [RuntimeError("timeout"), RuntimeError("timeout"), activity]
    job, _ = queue.enqueue_refresh(stale_repo.id)

    stats = processor.run_once()

    assert stats == {"processed": 3, "completed": 1, "requeued": 2, "failed": 0}
    done = queue.get(job.id)
    assert done.status == "completed"
    assert done.attempts == 3
    assert done.last_error is None


def test_job_fails_after_max_attempts(processor, store, queue, fake_github, stale_repo):
    fake_github.fetch_repository.side_effect = RuntimeError("GitHub unavailable")
    job, _ = queue.enqueue_refresh(stale_repo.id)

    stats = processor.run_once()

    assert stats == {"processed": 3, "completed": 0, "requeued": 2, "failed": 1}
    failed = queue.get(job.id)
    assert failed.status == "failed"
    assert failed.attempts == 3
    assert failed.last_error == "GitHub unavailable"
    assert store.get(stale_repo.id).health_refreshed_at is None


def test_error_without_message_records_exception_name(processor, queue, fake_github, stale_repo):
    fake_github.fetch_repository.side_effect = RuntimeError()
    job, _ = queue.enqueue_refresh(stale_repo.id)
    processor.run_once()
    assert queue.get(job.id).last_error == "RuntimeError"


def test_missing_repository_fails_job(processor, queue, fake_github):
    job, _ = queue.enqueue_refresh(999)

    processor.run_once()

    failed = queue.get(job.id)
    assert failed.status == "failed"
    assert failed.last_error == "Repository 999 not found"
    fake_github.fetch_repository.assert_not_called()


def test_same_day_refresh_updates_existing_window(store, queue, fake_github, stale_repo, session_factory):
    queue.enqueue_refresh(stale_repo.id)
    make_processor(store, queue, fake_github, now=NOW).run_once()
    queue.enqueue_refresh(stale_repo.id)
    make_processor(store, queue, fake_github, now=NOW + timedelta(hours=3)).run_once()

    rows = activity_rows(session_factory, stale_repo.id)
    assert len(rows) == 1
    assert rows[0].window_end == NOW + timedelta(hours=3)
    assert rows[0].window_start == NOW + timedelta(hours=3) - timedelta(days=30)


def test_next_day_refresh_adds_window(store, queue, fake_github, stale_repo, session_factory):
    queue.enqueue_refresh(stale_repo.id)
    make_processor(store, queue, fake_github, now=NOW).run_once()
    queue.enqueue_refresh(stale_repo.id)
    make_processor(store, queue, fake_github, now=NOW + timedelta(days=1)).run_once()

    rows = activity_rows(session_factory, stale_repo.id)
    assert len(rows) == 2
    assert store.latest_activity(stale_repo.id).window_end == NOW + timedelta(days=1)


def test_refresh_writes_nothing_when_activity_upsert_fails(processor, store, queue, stale_repo,
                                                           session_factory):
    job, _ = queue.enqueue_refresh(stale_repo.id)

    with patch.object(RepositoryStore, "_upsert_activity", side_effect=RuntimeError("disk full")):
        processor.run_once()

    unchanged = store.get(stale_repo.id)
    assert unchanged.stars == 120
    assert unchanged.etag == '"v1"'
    assert unchanged.health_score == 20
    assert unchanged.health_refreshed_at is None
    assert activity_rows(session_factory, stale_repo.id) == []
    assert queue.get(job.id).last_error == "disk full"


def _insert_job(session_factory, **fields):
    session = session_factory()
    try:
        job = RefreshJob(created_at=NOW, **fields)
        session.add(job)
        session.commit()
        return job
    finally:
        session.close()


def test_unknown_job_kind_fails(processor, queue, session_factory):
    job = _insert_job(session_factory, kind="mystery", payload={})

    processor.run_once()

    failed = queue.get(job.id)
    assert failed.status == "failed"
    assert failed.last_error == "Unknown job kind: mystery"


def test_payload_without_repo_id_fails(processor, queue, session_factory, fake_github):
    job = _insert_job(session_factory, kind="refresh_repo", payload={})

    processor.run_once()

    assert queue.get(job.id).last_error == "Job payload missing repo_id"
    fake_github.fetch_repository.assert_not_called()


def test_jobs_are_processed_in_order(store, queue, fake_github, add_repository):
    first = add_repository("octo/first")
    second = add_repository("octo/second")
    queue.enqueue_refresh(first.id)
    queue.enqueue_refresh(second.id)

    make_processor(store, queue, fake_github).run_once()

    names = [c.args[0] for c in fake_github.fetch_repository.call_args_list]
    assert names == ["octo/first", "octo/second"]


def test_from_config(store, queue, fake_github):
    class FakeConfig:
        activity_window_days = 14

    processor = JobProcessor.from_config(FakeConfig(), store, queue, fake_github)
    assert processor.window_days == 14


def test_first_drain_recovers_job_left_processing(processor, store, queue, stale_repo):
    orphan, _ = queue.enqueue_refresh(stale_repo.id)
    queue.claim_next()
    _, created = queue.enqueue_refresh(stale_repo.id)
    assert created is False

    stats = processor.run_once()

    assert stats["completed"] == 1
    done = queue.get(orphan.id)
    assert done.status == "completed"
    assert done.attempts == 2
    assert store.get(stale_repo.id).health_refreshed_at == NOW


def test_later_drains_leave_processing_jobs_alone(processor, queue, stale_repo):
    processor.run_once()
    job, _ = queue.enqueue_refresh(stale_repo.id)
    queue.claim_next()

    assert processor.run_once()["processed"] == 0
    assert queue.get(job.id).status == "processing"


def test_only_newest_windows_are_kept(session_factory, queue, fake_github, stale_repo):
    store = RepositoryStore(session_factory, windows_kept=2)
    for day in range(3):
        queue.enqueue_refresh(stale_repo.id)
        make_processor(store, queue, fake_github, now=NOW + timedelta(days=day)).run_once()

    rows = activity_rows(session_factory, stale_repo.id)
    assert sorted(row.window_end for row in rows) == [NOW + timedelta(days=1), NOW + timedelta(days=2)]


def test_windows_kept_must_be_positive(session_factory):
    with pytest.raises(ValueError):
        RepositoryStore(session_factory, windows_kept=0)
