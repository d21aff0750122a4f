# bookstreak/conftest.py
import sys
import pytest
from pathlib import Path

# Add project root to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(scope="session", autouse=True)
def test_database(tmp_path_factory):
    """
    Point the engine at a throwaway SQLite file and create all tables.

    Runs once per test session. A file (not :memory:) so worker threads in
    the concurrency tests share one database.
    """
    from bookstreak.core.database import create_all_tables, init_engine

    db_file = tmp_path_factory.mktemp("db") / "bookstreak_test.db"
    engine = init_engine(f"sqlite:///{db_file}")
    create_all_tables()
    yield engine
    engine.dispose()


@pytest.fixture(scope="function", autouse=True)
def reset_db(test_database):
    """Delete every row before each test so tests never share state."""
    from bookstreak.core.database import clear_all_tables

    clear_all_tables()
    yield


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from bookstreak.main import app

    with TestClient(app) as test_client:
        yield test_client
