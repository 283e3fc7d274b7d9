"""Shared fixtures: a fresh in-memory database per test and GitHub fakes."""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from goodfirst.db import create_session_factory
from goodfirst.github.schemas import ActivityData, FetchResult, RepositoryMetadata
from goodfirst.jobs.queue import JobQueue
from goodfirst.models.repository import RepoActivity, Repository
from goodfirst.store import RepositoryStore

NOW = datetime(2026, 10, 1, 12, 0, 0)


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite:///:memory:")


@pytest.fixture
def store(session_factory):
    return RepositoryStore(session_factory)


@pytest.fixture
def queue(session_factory):
    return JobQueue(session_factory, max_attempts=3)


@pytest.fixture
def add_repository(session_factory):
    """Insert a Repository row directly and return it."""
    def _add(full_name="octo/hello", **fields):
        values = {
            "stars": 120,
            "forks": 10,
            "open_issues": 15,
            "default_branch": "main",
            "last_commit_at": NOW - timedelta(days=3),
            "has_good_first_issues": True,
            "etag": '"v1"',
            "last_fetched_at": NOW,
            "health_score": 20,
        }
        values.update(fields)
        session = session_factory()
        try:
            repo = Repository(full_name=full_name, **values)
            session.add(repo)
            session.commit()
            return repo
        finally:
            session.close()
    return _add


@pytest.fixture
def add_activity(session_factory):
    def _add(repo_id, window_end=NOW, **fields):
        session = session_factory()
        try:
            activity = RepoActivity(repo_id=repo_id, window_start=window_end - timedelta(days=30),
                                    window_end=window_end, **fields)
            session.add(activity)
            session.commit()
            return activity
        finally:
            session.close()
    return _add


def make_metadata(full_name="octo/hello", **fields) -> RepositoryMetadata:
    values = {
        "id": 1296269,
        "description": "Hello world",
        "stars": 250,
        "forks": 12,
        "open_issues": 30,
        "default_branch": "main",
        "last_commit_at": NOW - timedelta(days=1),
        "has_good_first_issues": True,
    }
    values.update(fields)
    return RepositoryMetadata(full_name=full_name, **values)


def make_activity(pulls=None, issues=None) -> ActivityData:
    return ActivityData(since=NOW - timedelta(days=30), commits=[], pulls=pulls or [], issues=issues or [])


@pytest.fixture
def fake_github():
    """A GitHubClient stand-in returning fresh metadata and a little activity."""
    github = MagicMock()
    github.fetch_repository.return_value = FetchResult(etag='"v2"', metadata=make_metadata())
    github.fetch_activity.return_value = make_activity(
        pulls=[
            {"number": 1, "created_at": NOW - timedelta(days=5), "merged_at": NOW - timedelta(days=3)},
            {"number": 2, "created_at": NOW - timedelta(days=2), "merged_at": None},
        ],
        issues=[
            {"number": 3, "comments": 4, "pull_request": False},
            {"number": 1, "comments": 1, "pull_request": True},
        ],
    )
    return github
