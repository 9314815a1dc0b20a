"""Process-wide synchronization state for the open project."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable

from .change_queue import ChangeKey, ChangeQueue
from .records import Record


class SpecialPropertyIndex:
    """Lazily computed, invalidatable ``type -> has special properties`` map.

    A type that has been observed with a special property once stays nested
    until the entry is invalidated; otherwise the value is computed on demand
    by scanning the records returned by ``records_for``.
    """

    def __init__(
        self,
        records_for: Callable[[str], Iterable[Record]],
        has_special: Callable[[Record], bool],
    ) -> None:
        self._records_for = records_for
        self._has_special = has_special
        self._cache: Dict[str, bool] = {}

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._cache

    def get(self, type_id: str) -> bool:
        cached = self._cache.get(type_id)
        if cached is not None:
            return cached

        value = any(self._has_special(record) for record in self._records_for(type_id))
        self._cache[type_id] = value
        return value

    def mark(self, type_id: str) -> None:
        """Record that ``type_id`` carries at least one special property."""

        self._cache[type_id] = True

    def invalidate(self, type_id: str | None = None) -> None:
        if type_id is None:
            self._cache.clear()
        else:
            self._cache.pop(type_id, None)

    def as_dict(self) -> Dict[str, bool]:
        return dict(self._cache)


@dataclass
class SyncState:
    """Mutable state owned by a single :class:`~collectionsync.engine.SyncEngine`."""

    type_has_special_properties: SpecialPropertyIndex
    pending_changes: ChangeQueue = field(default_factory=ChangeQueue)
    last_sync_timestamp: float = 0.0
    collection_categories: Dict[str, str] = field(default_factory=dict)
    pending_renames: Dict[ChangeKey, str] = field(default_factory=dict)

    def observe_category(self, collection_id: str, category: str) -> None:
        self.collection_categories[collection_id] = category

    def reset(self) -> None:
        """Forget everything learned about the previously open project."""

        self.last_sync_timestamp = 0.0
        self.collection_categories.clear()
        self.pending_renames.clear()
        self.pending_changes.clear()
        self.type_has_special_properties.invalidate()


__all__ = ["ChangeKey", "SpecialPropertyIndex", "SyncState"]
