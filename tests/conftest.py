import os
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

# Ensure the module-level app defaults to the memory backend during tests
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todo_api.db import SQLiteRepository  # noqa: E402
from todo_api.main import create_app  # noqa: E402
from todo_api.repositories import InMemoryRepository, Repository  # noqa: E402
from todo_api.settings import Settings  # noqa: E402


@pytest.fixture()
def settings() -> Settings:
    return Settings(log_level="DEBUG")


@pytest.fixture()
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture()
def make_client(settings: Settings) -> Iterator[Callable[[Repository], TestClient]]:
    """Factory building a TestClient around any repository."""
    clients = []

    def _make(repository: Repository, **client_kwargs) -> TestClient:
        c = TestClient(create_app(repository=repository, settings=settings), **client_kwargs)
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()


@pytest.fixture()
def client(make_client, repo: InMemoryRepository) -> TestClient:
    return make_client(repo)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path) -> Repository:
    """Each storage backend, freshly created."""
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "todos.db"))
    return InMemoryRepository()
