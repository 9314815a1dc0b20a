"""Decompose records into a descriptor and externalized property files."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List

from .errors import SchemaError, SyncWriteError
from .paths import PathCodec
from .records import CollectionStore, Record
from .resilience import Err, Result
from .state import SpecialPropertyIndex

logger = logging.getLogger(__name__)

SaveCall = Callable[[str, str], Awaitable[Result[None]]]


@dataclass(frozen=True)
class SpecialPayload:
    """Text of one externalized property and the file it is written to."""

    property_name: str
    folder: str
    extension: str
    path: str
    content: str


@dataclass
class SplitPlan:
    """Everything needed to persist one record."""

    type_id: str
    object_id: str
    category: str
    file_name: str
    nested: bool
    descriptor_path: str
    descriptor: Record
    special_payloads: List[SpecialPayload] = field(default_factory=list)

    def descriptor_text(self) -> str:
        return dump_descriptor(self.descriptor)

    def paths(self) -> List[str]:
        return [self.descriptor_path, *(payload.path for payload in self.special_payloads)]


def dump_descriptor(payload: Record) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


class ObjectSplitter:
    """Turn ``(type, id, record)`` into a :class:`SplitPlan` and write it."""

    def __init__(
        self,
        codec: PathCodec,
        store: CollectionStore,
        special_index: SpecialPropertyIndex,
    ) -> None:
        self.codec = codec
        self.schema = codec.schema
        self.store = store
        self.special_index = special_index

    def split(self, type_id: str, object_id: str, record: Record) -> SplitPlan:
        """Return the descriptor and special payloads for ``record``.

        Raises:
            SchemaError: If no category is defined for ``type_id``.
            ValueError: If ``type_id``/``object_id`` are empty or ``record``
                is not a mapping.
        """

        if not type_id or not object_id:
            raise ValueError("type and id must be non-empty")
        if not isinstance(record, dict):
            raise ValueError(f"record for {type_id}/{object_id} must be a dict")

        category = self.store.get_category_for_type(type_id)
        if not category:
            raise SchemaError(type_id)

        descriptor: Record = dict(record)
        specials = self.schema.special_fields(record)
        for config in specials:
            descriptor.pop(config.property_name, None)
            descriptor.pop(self.schema.file_path_field(config.property_name), None)
        if specials:
            self.special_index.mark(type_id)

        nested = self.special_index.get(type_id)
        if nested:
            stored_name = descriptor.get("fileName")
            file_name = stored_name if isinstance(stored_name, str) and stored_name else object_id
            descriptor["fileName"] = file_name
        else:
            file_name = object_id
            descriptor.pop("fileName", None)

        payloads = [
            SpecialPayload(
                property_name=config.property_name,
                folder=config.directory,
                extension=config.extension,
                path=self.codec.encode(category, type_id, file_name, config.property_name),
                content=record[config.property_name],
            )
            for config in specials
        ]

        return SplitPlan(
            type_id=type_id,
            object_id=object_id,
            category=category,
            file_name=file_name,
            nested=nested,
            descriptor_path=self.codec.encode(category, type_id, file_name, nested=nested),
            descriptor=descriptor,
            special_payloads=payloads,
        )

    async def write(self, plan: SplitPlan, save: SaveCall) -> None:
        """Write the descriptor, then every special payload concurrently.

        The in-memory record only receives its ``fileName`` once every write
        succeeded.

        Raises:
            SyncWriteError: If any of the writes failed.
        """

        descriptor_result = await save(plan.descriptor_path, plan.descriptor_text())
        if isinstance(descriptor_result, Err):
            raise SyncWriteError(plan.type_id, plan.object_id, [descriptor_result.error])

        results = await asyncio.gather(
            *(save(payload.path, payload.content) for payload in plan.special_payloads)
        )
        errors = [result.error for result in results if isinstance(result, Err)]
        if errors:
            raise SyncWriteError(plan.type_id, plan.object_id, errors)

        if plan.nested:
            current = self.store.get(plan.type_id, plan.object_id)
            if current is not None:
                current["fileName"] = plan.file_name
        logger.debug("Wrote %s (%d companion files)", plan.descriptor_path, len(plan.special_payloads))


__all__ = ["ObjectSplitter", "SpecialPayload", "SplitPlan", "dump_descriptor"]
