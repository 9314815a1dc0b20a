"""Cascade a record's file rename across all of its companion files."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .paths import PathCodec
from .property_schema import DATA_FOLDER, DESCRIPTOR_EXTENSION
from .records import Record
from .resilience import Err, GuardedFileStore
from .splitter import dump_descriptor

logger = logging.getLogger(__name__)


@dataclass
class RenameOutcome:
    """What happened while moving ``old_base`` files to ``new_base``."""

    old_base: str
    new_base: str
    renamed: Dict[str, str] = field(default_factory=dict)
    failed: List[Tuple[str, Exception]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    descriptor_path: str | None = None
    reconciled: bool = False


class RenameReconciler:
    """Rename ``<base>/<folder>/<old>.<ext>`` to ``<new>.<ext>`` for a record.

    Renames for one record are issued together and awaited as a batch. A
    failed rename is logged and leaves that companion stale; nothing is
    rolled back.
    """

    def __init__(self, codec: PathCodec, files: GuardedFileStore) -> None:
        self.codec = codec
        self.schema = codec.schema
        self.files = files

    def candidate_moves(
        self, collection_path: str, old_base: str, new_base: str
    ) -> List[Tuple[str, str]]:
        """Return ``(old, new)`` path pairs for the descriptor and every config."""

        moves = [
            (
                f"{collection_path}/{DATA_FOLDER}/{old_base}.{DESCRIPTOR_EXTENSION}",
                f"{collection_path}/{DATA_FOLDER}/{new_base}.{DESCRIPTOR_EXTENSION}",
            )
        ]
        for config in self.schema:
            folder = f"{collection_path}/{config.directory}"
            moves.append(
                (
                    f"{folder}/{old_base}.{config.extension}",
                    f"{folder}/{new_base}.{config.extension}",
                )
            )
        return moves

    async def reconcile(
        self,
        collection_path: str,
        old_base: str,
        new_base: str,
        *,
        descriptor: Record,
        record: Record | None = None,
    ) -> RenameOutcome:
        """Move every file of a record from ``old_base`` to ``new_base``.

        Args:
            collection_path: ``<root>/<category>/<collection>`` folder.
            old_base: Base filename currently used by the stale files.
            new_base: Base filename the files should carry.
            descriptor: Parsed descriptor payload, rewritten with the new
                ``fileName`` once it sits at the new path.
            record: In-memory record whose ``fileName`` and companion path
                fields are updated in place.
        """

        outcome = RenameOutcome(old_base=old_base, new_base=new_base)
        if old_base == new_base:
            outcome.reconciled = True
            return outcome

        listing = await self.files.list_files(collection_path, 0)
        if isinstance(listing, Err):
            logger.warning(
                "Cannot reconcile %s -> %s under %s: listing failed",
                old_base,
                new_base,
                collection_path,
            )
            return outcome
        existing = {entry.name for entry in listing.value}

        moves: List[Tuple[str, str]] = []
        for old_path, new_path in self.candidate_moves(collection_path, old_base, new_base):
            if old_path not in existing:
                continue
            if new_path in existing:
                logger.warning("Not renaming %s: %s already exists", old_path, new_path)
                outcome.skipped.append(old_path)
                continue
            moves.append((old_path, new_path))

        results = await asyncio.gather(
            *(self.files.rename_file(old_path, new_path) for old_path, new_path in moves)
        )
        for (old_path, new_path), result in zip(moves, results):
            if isinstance(result, Err):
                logger.error("Rename %s -> %s failed: %s", old_path, new_path, result.error)
                outcome.failed.append((old_path, result.error))
            else:
                outcome.renamed[old_path] = new_path
                existing.discard(old_path)
                existing.add(new_path)

        new_descriptor = f"{collection_path}/{DATA_FOLDER}/{new_base}.{DESCRIPTOR_EXTENSION}"
        if new_descriptor not in existing:
            logger.warning(
                "Descriptor for %s is not at %s; leaving fileName unchanged",
                new_base,
                new_descriptor,
            )
            return outcome

        payload = dict(descriptor)
        payload["fileName"] = new_base
        saved = await self.files.save_file(new_descriptor, dump_descriptor(payload))
        if isinstance(saved, Err):
            logger.error("Failed to rewrite descriptor %s", new_descriptor)
            return outcome

        outcome.descriptor_path = new_descriptor
        outcome.reconciled = True
        if record is not None:
            record["fileName"] = new_base
            self._update_file_paths(record, outcome.renamed)

        logger.info(
            "Renamed %s -> %s (%d files, %d failed)",
            old_base,
            new_base,
            len(outcome.renamed),
            len(outcome.failed),
        )
        return outcome

    def _update_file_paths(self, record: Record, renamed: Dict[str, str]) -> None:
        for config in self.schema:
            path_field = self.schema.file_path_field(config.property_name)
            current = record.get(path_field)
            if isinstance(current, str) and current in renamed:
                record[path_field] = renamed[current]


__all__ = ["RenameOutcome", "RenameReconciler"]
