"""Test configuration for the collection synchronization project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import asyncio
import json
from typing import Any, Callable, Mapping

import pytest

from collectionsync.file_store import InMemoryFileStore
from collectionsync.paths import PathCodec
from collectionsync.property_schema import PropertySchema
from collectionsync.records import CollectionStore, TypeDefinition

PROJECT_ROOT = "proj/collections"


class FakeClock:
    """Deterministic clock used to simulate time progression in tests."""

    def __init__(self, start: float = 100.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, delta: float = 1.0) -> None:
        self._now += delta


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_store(fake_clock: FakeClock) -> InMemoryFileStore:
    """Return an in-memory file store stamped by ``fake_clock``."""

    return InMemoryFileStore(clock=fake_clock)


@pytest.fixture()
def schema() -> PropertySchema:
    return PropertySchema()


@pytest.fixture()
def codec(schema: PropertySchema) -> PathCodec:
    return PathCodec(schema, root=PROJECT_ROOT)


@pytest.fixture()
def collection_store() -> CollectionStore:
    """Return a store for ``proj`` knowing the ``entities`` type under ``Scripts``."""

    return CollectionStore(
        "proj",
        type_definitions=[TypeDefinition(id="entities", category="Scripts")],
    )


@pytest.fixture()
def seed_file(memory_store: InMemoryFileStore) -> Callable[..., str]:
    """Factory writing a file below ``proj/collections`` synchronously."""

    def _seed(relative: str, content: str | Mapping[str, Any]) -> str:
        path = f"{PROJECT_ROOT}/{relative}"
        text = content if isinstance(content, str) else json.dumps(dict(content))
        asyncio.run(memory_store.save_file(path, text))
        return path

    return _seed


__all__ = ["FakeClock", "PROJECT_ROOT"]
