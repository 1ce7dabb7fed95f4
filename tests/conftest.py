import pytest
from fastapi.testclient import TestClient

from fieldops import store
from fieldops.api import app, get_engine
from fieldops.database import init_db
from factories import make_cost_code


@pytest.fixture
def db_url(tmp_path):
    # A temporary SQLite file per test keeps records isolated.
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def engine(db_url):
    engine = init_db(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def cost_code(engine):
    cc = make_cost_code()
    store.save_cost_code(engine, cc)
    return cc
