import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def client(tmp_path, monkeypatch):
    """App client on a throwaway SQLite file with its own standings board."""

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'retas.db'}")

    import database
    database.engine = None
    database.AsyncSessionLocal = None

    from fastapi.testclient import TestClient
    from main import app
    from reta.recompute import StandingsBoard
    from reta.router import get_board

    standings_board = StandingsBoard()
    app.dependency_overrides[get_board] = lambda: standings_board
    with TestClient(app) as test_client:
        test_client.standings_board = standings_board
        yield test_client
    app.dependency_overrides.clear()
