"""Shared pytest fixtures for Plaza tests."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import patch

import pytest
from flask import Flask
from flask.testing import FlaskClient

if TYPE_CHECKING:
    from plaza.db.blob_store import BlobStore
    from plaza.db.models import Database, UserProfile

# Set test environment variables before importing app modules.
# The global db and blob store are created at import time, so point them at a
# throwaway directory; every test gets its own isolated files below.
_IMPORT_DIR = tempfile.mkdtemp(prefix="plaza-tests-")
os.environ["FLASK_ENV"] = "testing"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["RATE_LIMITING_ENABLED"] = "false"
os.environ["DATABASE_PATH"] = str(Path(_IMPORT_DIR) / "import.db")
os.environ["BLOB_STORAGE_PATH"] = str(Path(_IMPORT_DIR) / "import_files.db")
os.environ["STORE_RETRY_BASE_DELAY_SECONDS"] = "0.001"

ROUTE_MODULES = [
    "plaza.api.routes.chats",
    "plaza.api.routes.economy",
    "plaza.api.routes.follows",
    "plaza.api.routes.notifications",
    "plaza.api.routes.posts",
    "plaza.api.routes.profiles",
    "plaza.api.routes.system",
]

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


# -----------------------------------------------------------------------------
# Database fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def temp_db_dir() -> Generator[Path]:
    """Create a temporary directory for test databases."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_db_path(temp_db_dir: Path, request: pytest.FixtureRequest) -> Path:
    """Create unique database path for each test."""
    # Use test name to create unique DB file
    test_name = request.node.name.replace("[", "_").replace("]", "_").replace("/", "_")
    return temp_db_dir / f"{test_name}.db"


@pytest.fixture
def test_blob_path(temp_db_dir: Path, request: pytest.FixtureRequest) -> Path:
    """Create unique blob store path for each test."""
    test_name = request.node.name.replace("[", "_").replace("]", "_").replace("/", "_")
    return temp_db_dir / f"{test_name}_blobs.db"


@pytest.fixture
def test_blob_store(test_blob_path: Path) -> Generator[BlobStore]:
    """Create isolated blob store for each test.

    The module-level blob store is swapped out so that database operations
    and routes use this instance.
    """
    from plaza.db.blob_store import BlobStore

    blob_store = BlobStore(db_path=test_blob_path)
    with patch("plaza.db.blob_store._blob_store", blob_store):
        yield blob_store


@pytest.fixture
def test_database(test_db_path: Path, test_blob_store: BlobStore) -> Generator[Database]:
    """Create isolated test database for each test."""
    from plaza.db.models import Database

    db = Database(db_path=test_db_path)
    yield db
    db.close()


@pytest.fixture
def make_user(test_database: Database) -> Callable[..., UserProfile]:
    """Factory registering a profile with a username."""

    def _make_user(user_id: str, username: str | None = None) -> UserProfile:
        return test_database.set_username(
            user_id, username or f"user_{user_id}", email=f"{user_id}@example.com", now=T0
        )

    return _make_user


# -----------------------------------------------------------------------------
# Flask app fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def app(test_database: Database) -> Generator[Flask]:
    """Create Flask test application with isolated database and blob store."""
    patches = [patch(f"{module}.db", test_database) for module in ROUTE_MODULES]
    for p in patches:
        p.start()
    try:
        from plaza.app import create_app

        flask_app = create_app()
        flask_app.config["TESTING"] = True
        yield flask_app
    finally:
        for p in reversed(patches):
            p.stop()


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create Flask test client."""
    return app.test_client()


# -----------------------------------------------------------------------------
# User and auth fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_user(make_user: Callable[..., UserProfile]) -> UserProfile:
    """Registered test user."""
    return make_user("alice-id", "alice")


@pytest.fixture
def other_user(make_user: Callable[..., UserProfile]) -> UserProfile:
    """A second registered user."""
    return make_user("bob-id", "bob")


@pytest.fixture
def headers_for() -> Callable[[str], dict[str, str]]:
    """Factory building bearer auth headers for any user id."""
    from plaza.auth.jwt_auth import create_token

    def _headers_for(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_token(user_id)}"}

    return _headers_for


@pytest.fixture
def auth_headers(
    test_user: UserProfile, headers_for: Callable[[str], dict[str, str]]
) -> dict[str, str]:
    """Auth headers for the test user."""
    return headers_for(test_user.user_id)


@pytest.fixture
def other_headers(
    other_user: UserProfile, headers_for: Callable[[str], dict[str, str]]
) -> dict[str, str]:
    """Auth headers for the second user."""
    return headers_for(other_user.user_id)


# -----------------------------------------------------------------------------
# Image fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sample_png_base64() -> str:
    """Create a simple test PNG image."""
    from tests.fixtures.images import create_test_png

    return create_test_png(16, 16, "red")


@pytest.fixture
def sample_image(sample_png_base64: str) -> dict[str, Any]:
    """Sample image upload payload."""
    return {"type": "image/png", "data": sample_png_base64}
