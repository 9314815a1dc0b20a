"""Coalesce editor changes per object between flush cycles."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Tuple

from .records import Record

logger = logging.getLogger(__name__)

ChangeKey = Tuple[str, str]


@dataclass
class PendingChange:
    """The latest state of one record waiting to be written.

    ``obsolete_paths`` lists files that should be removed once the record has
    been written successfully (for example the descriptor of a previous id).
    """

    type_id: str
    object_id: str
    record: Record
    timestamp: float = 0.0
    obsolete_paths: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def key(self) -> ChangeKey:
        return (self.type_id, self.object_id)


ChangeWriter = Callable[[PendingChange], Awaitable[bool]]


class ChangeQueue:
    """Last-write-wins queue of pending record writes keyed by ``(type, id)``."""

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        self._pending: Dict[ChangeKey, PendingChange] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def keys(self) -> List[ChangeKey]:
        return list(self._pending)

    def get(self, type_id: str, object_id: str) -> PendingChange | None:
        return self._pending.get((type_id, object_id))

    def queue(
        self,
        type_id: str,
        object_id: str,
        record: Record,
        *,
        obsolete_paths: Iterable[str] = (),
    ) -> PendingChange:
        """Insert or replace the pending entry for ``(type_id, object_id)``."""

        if not type_id or not object_id:
            raise ValueError("type and id must be non-empty")
        if not isinstance(record, dict):
            raise TypeError(f"record must be a dict, got {type(record)!r}")

        key = (type_id, object_id)
        previous = self._pending.get(key)
        obsolete = list(previous.obsolete_paths) if previous else []
        for path in obsolete_paths:
            if path not in obsolete:
                obsolete.append(path)

        change = PendingChange(
            type_id=type_id,
            object_id=object_id,
            record=record,
            timestamp=self._clock(),
            obsolete_paths=tuple(obsolete),
        )
        self._pending[key] = change
        return change

    def discard(self, type_id: str, object_id: str) -> None:
        self._pending.pop((type_id, object_id), None)

    def discard_type(self, type_id: str) -> None:
        for key in [key for key in self._pending if key[0] == type_id]:
            del self._pending[key]

    def clear(self) -> None:
        self._pending.clear()

    async def flush(
        self, writer: ChangeWriter, *, keys: Iterable[ChangeKey] | None = None
    ) -> Tuple[int, int]:
        """Write pending changes concurrently through ``writer``.

        Entries are removed only after all writes settled, and only when their
        write succeeded and no newer edit replaced them in the meantime.

        Args:
            writer: Coroutine writing one change and returning success.
            keys: Restrict the flush to these entries; ``None`` flushes all.

        Returns:
            ``(written, failed)`` counts.
        """

        if keys is None:
            changes = list(self._pending.values())
        else:
            changes = [
                self._pending[key] for key in dict.fromkeys(keys) if key in self._pending
            ]
        if not changes:
            return 0, 0

        logger.info("Processing %d pending changes", len(changes))
        outcomes = await asyncio.gather(*(writer(change) for change in changes))

        written = 0
        for change, succeeded in zip(changes, outcomes):
            if not succeeded:
                continue
            written += 1
            if self._pending.get(change.key) is change:
                del self._pending[change.key]
        return written, len(changes) - written


__all__ = ["ChangeKey", "ChangeQueue", "ChangeWriter", "PendingChange"]
