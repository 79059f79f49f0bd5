import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "openbudget" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any app modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ALG", "HS256")
os.environ.setdefault("JWT_ACCESS_MIN", "30")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

# Import the DB session module first so we can patch it before the app is imported
import openbudget.db.session as app_db_session  # type: ignore

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, expire_on_commit=False, future=True)

# --- Ensure tests and app code share the SAME in-memory engine/sessionmaker ---
setattr(app_db_session, "ENGINE", ENGINE)
app_db_session.SessionLocal = SessionTesting
app_db_session.get_engine = lambda: ENGINE            # type: ignore
app_db_session.get_sessionmaker = lambda: SessionTesting  # type: ignore

from openbudget.core.security import create_access
from openbudget.db.base import Base
from openbudget.db.session import get_db
from openbudget.main import app
from openbudget.models import Budget


def _create_schema():
    Base.metadata.create_all(bind=ENGINE)


def _drop_schema():
    Base.metadata.drop_all(bind=ENGINE)


# Ensure schema exists even for modules that instantiate TestClient at import time
_create_schema()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def _session_factory():
    yield SessionTesting


@pytest.fixture(scope="function")
def reset_db():
    _drop_schema()
    _create_schema()
    yield
    _drop_schema()
    _create_schema()


@pytest.fixture(scope="function")
def db(_session_factory, reset_db):
    session = _session_factory()

    def _override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def db_session(db):
    yield db


@pytest.fixture(scope="function")
def client(db):
    token = create_access("pytest@example.com", role="admin")
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        yield c


@pytest.fixture(scope="function")
def user_client(db):
    token = create_access("viewer@example.com", role="user")
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as c:
        yield c


@pytest.fixture(scope="function")
def seeded_budgets(db):
    """Three budgets for 2024 plus one without a code and one from another year."""
    rows = [
        Budget(code="0953000000", year=2024, name="Бюджет Києва", region_code="32"),
        Budget(code="0150000000", year=2024, name="Бюджет Житомира", region_code="06"),
        Budget(code="0210000000", year=2024, name="Бюджет Вінниці", region_code="02"),
        Budget(code=None, year=2024, name="Без коду"),
        Budget(code="0953000000", year=2023, name="Бюджет Києва", region_code="32"),
    ]
    db.add_all(rows)
    db.commit()
    return rows
