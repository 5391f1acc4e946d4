import pytest
from fastapi.testclient import TestClient

from fakes import FakeClock, InMemoryDocumentStore
from studyroom.core.security import create_access_token


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def client(store):
    """TestClient with the document store swapped for the in-memory fake."""
    from studyroom.api.deps import get_store
    from studyroom.main import app

    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers
