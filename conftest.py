import pytest
from fastapi.testclient import TestClient

from api import create_app
from library import Library


@pytest.fixture
def db_file(tmp_path):
    # A unique database file per test
    return str(tmp_path / "test.db")


@pytest.fixture
def lib(db_file):
    return Library(db_file=db_file)


@pytest.fixture
def client(db_file):
    # Entering the client runs the lifespan, which builds the repository
    with TestClient(create_app(db_file=db_file)) as test_client:
        yield test_client
