"""
Shared fixtures — a throwaway SQLite credential store per test.
"""

import pytest

from config.settings import Settings

TEST_SECRET = "test-signing-secret"


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'credentials.db'}"


@pytest.fixture()
def settings(database_url) -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret=TEST_SECRET,
        database_url=database_url,
        bcrypt_rounds=4,
        service_name="auth-service",
    )
