"""Pytest fixtures for the Love Wall application."""

from __future__ import annotations

import os
import sys
import tempfile
from typing import Generator, Iterator

import pytest
from flask import Flask

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

_DB_FD, _DB_PATH = tempfile.mkstemp(prefix="lovewall-test-", suffix=".db")
os.close(_DB_FD)
os.environ["DATABASE_URL_TEST"] = f"sqlite:///{_DB_PATH}"

from lovewall import create_app  # noqa: E402
from lovewall.extensions import db as _db  # noqa: E402
from lovewall.wall import geometry  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _cleanup_test_database() -> Generator[None, None, None]:
    """Remove the dedicated SQLite database file after the run."""
    try:
        yield
    finally:
        try:
            os.remove(_DB_PATH)
        except OSError:
            pass


@pytest.fixture()
def app() -> Iterator[Flask]:
    application = create_app("testing")
    application.config.update(
        {
            "ADMIN_USERNAME": "admin",
            "ADMIN_PASSWORD": "hunter22",
            "S3_BUCKET_NAME": "test-bucket",
            "S3_PUBLIC_BASE_URL": "https://cdn.example.com",
        }
    )
    with application.app_context():
        _db.create_all()
    try:
        yield application
    finally:
        with application.app_context():
            _db.session.remove()
            _db.drop_all()


@pytest.fixture()
def db_session(app):
    """Provide a database session bound to the test app."""
    return _db.session


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _reset_layout_cache():
    """Ensure memoised heart layouts do not leak between tests."""
    geometry._generate.cache_clear()
    yield
    geometry._generate.cache_clear()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
