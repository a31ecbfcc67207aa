"""Pytest configuration and fixtures."""

import os
import tempfile

from cryptography.fernet import Fernet

# Must be set before bankbridge modules read the environment
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/bankbridge.db"
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ.pop("PLAID_CLIENT_ID", None)
os.environ.pop("PLAID_SECRET", None)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from bankbridge.core.database import Base, get_db  # noqa: E402
from bankbridge.core.dependencies import get_plaid  # noqa: E402
from bankbridge.main import app  # noqa: E402
from bankbridge.services.credential_store import CredentialStore  # noqa: E402
from tests.mocks import MockPlaidClient  # noqa: E402


@pytest.fixture(name="db_path")
def db_path_fixture(tmp_path):
    """A fresh SQLite file with the schema created."""
    path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return path


@pytest.fixture(name="sync_engine")
def sync_engine_fixture(db_path):
    """Synchronous engine on the test database, for asserting on stored rows."""
    engine = create_engine(f"sqlite:///{db_path}")
    yield engine
    engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(name="mock_plaid")
def mock_plaid_fixture():
    return MockPlaidClient()


@pytest.fixture(name="client")
def client_fixture(session_factory, mock_plaid):
    """Create a test client with the test database and a mock Plaid client."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_plaid] = lambda: mock_plaid
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(name="store")
async def store_fixture(session_factory):
    """Credential store on a session that the test commits itself."""
    async with session_factory() as session:
        yield CredentialStore(session)
