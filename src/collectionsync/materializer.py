"""Merge a record's descriptor and companion files back into one record."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping

from .errors import DescriptorParseError, FileStoreError
from .property_schema import PropertySchema
from .records import FileGroup, Record
from .state import SpecialPropertyIndex

logger = logging.getLogger(__name__)

_STATIC_LIST_PATTERN = re.compile(
    r"static\s+(?P<name>services|serviceDependencies)\s*=\s*\[(?P<body>.*?)\]",
    re.DOTALL,
)
_STRING_LITERAL_PATTERN = re.compile(r"""(['"`])(?P<value>[^'"`]+?)\1""")


@dataclass
class MaterializedObject:
    """Result of materializing one :class:`FileGroup`."""

    collection_id: str
    object_id: str
    record: Record
    file_name: str
    has_special_properties: bool


def parse_descriptor(path: str, content: str) -> Record:
    """Parse a descriptor file, which must hold a JSON object."""

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise DescriptorParseError(path, f"invalid JSON ({exc.msg})") from exc
    if not isinstance(payload, dict):
        raise DescriptorParseError(path, "descriptor must contain a JSON object")
    return payload


def extract_static_lists(source: str) -> Dict[str, List[str]]:
    """Return ``services``/``serviceDependencies`` lists declared in ``source``.

    Only string literals are collected; anything dynamic is ignored.
    """

    found: Dict[str, List[str]] = {}
    for match in _STATIC_LIST_PATTERN.finditer(source):
        values = [
            literal.group("value").strip()
            for literal in _STRING_LITERAL_PATTERN.finditer(match.group("body"))
        ]
        found[match.group("name")] = [value for value in values if value]
    return found


class ObjectMaterializer:
    """Build composite records from the files of a :class:`FileGroup`."""

    def __init__(self, schema: PropertySchema, special_index: SpecialPropertyIndex) -> None:
        self.schema = schema
        self.special_index = special_index

    def canonical_id(self, group: FileGroup, contents: Mapping[str, str]) -> str:
        """Return the descriptor's ``id`` when present, else the filename id."""

        descriptor = group.descriptor
        if descriptor is None or descriptor.path not in contents:
            return group.object_id
        payload = parse_descriptor(descriptor.path, contents[descriptor.path])
        return _id_from(payload) or group.object_id

    def materialize(
        self,
        group: FileGroup,
        contents: Mapping[str, str],
        existing: Record | None = None,
        *,
        object_id: str | None = None,
    ) -> MaterializedObject:
        """Merge ``group`` into a copy of ``existing`` and return the result.

        Only fields backed by files in the group are overwritten; fields that
        exist solely in memory are kept.

        Args:
            group: Files belonging to one object key.
            contents: Raw text keyed by path.
            existing: The record currently held in memory, if any.
            object_id: Id to use when the group has no descriptor.

        Raises:
            DescriptorParseError: If the descriptor is not a JSON object.
            FileStoreError: If the descriptor content was not read.
        """

        record: Record = dict(existing) if existing else {}
        canonical = object_id or group.object_id

        descriptor = group.descriptor
        if descriptor is not None:
            if descriptor.path not in contents:
                raise FileStoreError(
                    f"No content was read for {descriptor.path}", path=descriptor.path
                )
            payload = parse_descriptor(descriptor.path, contents[descriptor.path])
            canonical = _id_from(payload) or canonical
            record.update(payload)
        elif "id" not in record:
            record["id"] = canonical

        has_special = False
        script_read = False
        for companion in group.companions:
            config = self.schema.for_property(companion.property_role or "")
            if config is None:
                continue
            content = contents.get(companion.path)
            if content is None:
                logger.warning("Skipping unread companion file %s", companion.path)
                continue
            record[config.property_name] = content
            record[self.schema.file_path_field(config.property_name)] = companion.path
            has_special = True
            if config.property_name == self.schema.default_role:
                script_read = True

        if has_special:
            self.special_index.mark(group.collection_id)

        file_name = group.base_name
        if self.special_index.get(group.collection_id):
            record["fileName"] = file_name

        script = record.get(self.schema.default_role)
        if script_read and isinstance(script, str):
            record.update(extract_static_lists(script))

        return MaterializedObject(
            collection_id=group.collection_id,
            object_id=canonical,
            record=record,
            file_name=file_name,
            has_special_properties=has_special,
        )


def _id_from(payload: Mapping[str, object]) -> str | None:
    value = payload.get("id")
    if isinstance(value, str) and value.strip():
        return value
    return None


__all__ = [
    "MaterializedObject",
    "ObjectMaterializer",
    "extract_static_lists",
    "parse_descriptor",
]
