"""
pytest configuration and fixtures.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from worklog_api.main import create_app
from worklog_api.repositories import InMemoryRepository
from worklog_api.settings import Settings
from worklog_api.users import InMemoryUserRepository


class FakeClock:
    """Returns `current` when set, otherwise the real UTC time."""

    def __init__(self) -> None:
        self.current: Optional[datetime] = None

    def __call__(self) -> datetime:
        return self.current or datetime.now(timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        persistence_backend="memory",
        sqlite_db_path="",
        cors_allow_origins=["*"],
        jwt_secret_key="test-secret",
        jwt_algorithm="HS256",
        access_token_expire_minutes=60,
        log_level="WARNING",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo(clock) -> InMemoryRepository:
    return InMemoryRepository(clock=clock)


@pytest.fixture
def client(settings, repo) -> TestClient:
    app = create_app(settings=settings, repository=repo, user_repository=InMemoryUserRepository())
    return TestClient(app)


def make_payload(
    title="Wrote integration tests",
    description="Covered the happy path and the 404 branches",
    time="10:30",
    **extra,
):
    payload = {"title": title, "description": description, "time": time}
    payload.update(extra)
    return payload
