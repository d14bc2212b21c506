import os

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todosync.backend import get_backend, memory_backend  # noqa: E402
from todosync.main import app  # noqa: E402


@pytest.fixture
def backend():
    """Fresh in-memory backend wired into the app for one test."""
    b = memory_backend()
    app.dependency_overrides[get_backend] = lambda: b
    yield b
    app.dependency_overrides.pop(get_backend, None)


@pytest.fixture
def client(backend):
    return TestClient(app)
