"""Fixtures shared by the unit tests."""

from __future__ import annotations

import pytest
from fakes import RecordingSleep

from grounded_rag.storage import InMemoryStore, VectorStore


@pytest.fixture()
def backend() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def store(backend: InMemoryStore) -> VectorStore:
    return VectorStore(backend)


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()
