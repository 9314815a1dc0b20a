"""In-memory model of typed collections and their type definitions."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping

from .paths import DecodedPath

Record = Dict[str, Any]
Collection = Dict[str, Record]

SETTINGS_CATEGORY = "Settings"
TYPE_DEFINITIONS_COLLECTION = "objectTypeDefinitions"
TYPE_CATEGORIES_COLLECTION = "objectTypeCategories"


def title_case(identifier: str) -> str:
    """Return ``identifier`` with its first character upper-cased."""

    if not identifier:
        return identifier
    return identifier[0].upper() + identifier[1:]


@dataclass(frozen=True)
class TypeDefinition:
    """Describes a collection type and the category folder it lives under."""

    id: str
    name: str = ""
    singular: str = ""
    category: str | None = None
    is_core: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("type definition id must be a non-empty string")

        type_id = self.id.strip()
        object.__setattr__(self, "id", type_id)
        if not self.name:
            object.__setattr__(self, "name", title_case(type_id))
        if not self.singular:
            singular = type_id[:-1] if len(type_id) > 1 else type_id
            object.__setattr__(self, "singular", singular)
        if self.category is not None and not str(self.category).strip():
            object.__setattr__(self, "category", None)

    def with_category(self, category: str) -> "TypeDefinition":
        return TypeDefinition(
            id=self.id,
            name=self.name,
            singular=self.singular,
            category=category,
            is_core=self.is_core,
        )

    def to_payload(self) -> Record:
        """Return the JSON-serialisable descriptor for this definition."""

        payload: Record = {
            "id": self.id,
            "name": self.name,
            "singular": self.singular,
            "category": self.category,
            "isCore": self.is_core,
        }
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TypeDefinition":
        type_id = payload.get("id")
        if not isinstance(type_id, str):
            raise ValueError("type definition payload requires a string 'id'")

        category = payload.get("category")
        return cls(
            id=type_id,
            name=str(payload.get("name") or ""),
            singular=str(payload.get("singular") or ""),
            category=str(category) if category else None,
            is_core=bool(payload.get("isCore", False)),
        )


CORE_TYPE_DEFINITIONS: tuple[TypeDefinition, ...] = (
    TypeDefinition(
        id=TYPE_DEFINITIONS_COLLECTION,
        name="Object Type Definitions",
        singular="objectTypeDefinition",
        category=SETTINGS_CATEGORY,
        is_core=True,
    ),
    TypeDefinition(
        id=TYPE_CATEGORIES_COLLECTION,
        name="Object Type Categories",
        singular="objectTypeCategory",
        category=SETTINGS_CATEGORY,
        is_core=True,
    ),
)


@dataclass
class FileGroup:
    """Every decoded file that together represents one record."""

    category: str
    collection_id: str
    object_id: str
    files: List[DecodedPath] = field(default_factory=list)

    @property
    def descriptor(self) -> DecodedPath | None:
        for decoded in self.files:
            if decoded.is_descriptor:
                return decoded
        return None

    @property
    def companions(self) -> List[DecodedPath]:
        return [decoded for decoded in self.files if not decoded.is_descriptor]

    @property
    def base_name(self) -> str:
        """Return the base filename shared by the files of this group."""

        return self.files[0].object_id if self.files else self.object_id

    @property
    def collection_path(self) -> str | None:
        return self.files[0].collection_path if self.files else None

    @classmethod
    def from_decoded(cls, files: Iterable[DecodedPath]) -> "FileGroup":
        decoded_files = list(files)
        if not decoded_files:
            raise ValueError("a file group needs at least one file")
        first = decoded_files[0]
        return cls(
            category=first.category,
            collection_id=first.collection_id,
            object_id=first.object_id,
            files=decoded_files,
        )


class CollectionStore:
    """Holds the open project's collections and its active type definitions.

    Records are plain dictionaries keyed by object id inside each collection.
    Type definitions are kept separately as the *active set*; the persisted
    copies live in the ``objectTypeDefinitions`` collection like any other
    record.
    """

    def __init__(
        self,
        project_id: str | None = None,
        *,
        collections: Mapping[str, Mapping[str, Record]] | None = None,
        type_definitions: Iterable[TypeDefinition] | None = None,
    ) -> None:
        self.project_id = project_id
        self._collections: Dict[str, Collection] = {}
        self._type_definitions: Dict[str, TypeDefinition] = {}

        for definition in CORE_TYPE_DEFINITIONS:
            self._type_definitions[definition.id] = definition
        for definition in type_definitions or ():
            self._type_definitions[definition.id] = definition
        for collection_id, records in (collections or {}).items():
            self._collections[collection_id] = {
                object_id: dict(record) for object_id, record in records.items()
            }

    # -- Collections --

    def collection_ids(self) -> List[str]:
        return sorted(self._collections)

    def get_collection(self, collection_id: str) -> Collection:
        """Return the live mapping for ``collection_id`` (empty if unknown)."""

        return self._collections.get(collection_id, {})

    def ensure_collection(self, collection_id: str) -> Collection:
        return self._collections.setdefault(collection_id, {})

    def has_collection(self, collection_id: str) -> bool:
        return collection_id in self._collections

    def drop_collection(self, collection_id: str) -> None:
        self._collections.pop(collection_id, None)

    def iter_records(self) -> Iterator[tuple[str, str, Record]]:
        for collection_id in sorted(self._collections):
            for object_id, record in sorted(self._collections[collection_id].items()):
                yield collection_id, object_id, record

    def get(self, collection_id: str, object_id: str) -> Record | None:
        return self._collections.get(collection_id, {}).get(object_id)

    def put(self, collection_id: str, object_id: str, record: Record) -> None:
        self.ensure_collection(collection_id)[object_id] = record

    def remove(self, collection_id: str, object_id: str) -> Record | None:
        return self._collections.get(collection_id, {}).pop(object_id, None)

    def rekey(self, collection_id: str, old_id: str, new_id: str) -> None:
        """Move the record stored under ``old_id`` to ``new_id``."""

        collection = self._collections.get(collection_id)
        if collection is None or old_id not in collection:
            return
        collection[new_id] = collection.pop(old_id)

    def find_by_file_name(self, collection_id: str, file_name: str) -> str | None:
        """Return the id of the record whose ``fileName`` equals ``file_name``."""

        for object_id, record in self._collections.get(collection_id, {}).items():
            if record.get("fileName") == file_name:
                return object_id
        return None

    def snapshot(self) -> Dict[str, Collection]:
        """Return a deep copy of every collection."""

        return copy.deepcopy(self._collections)

    # -- Type definitions --

    def type_definitions(self) -> List[TypeDefinition]:
        return [self._type_definitions[key] for key in sorted(self._type_definitions)]

    def get_type_definition(self, type_id: str) -> TypeDefinition | None:
        return self._type_definitions.get(type_id)

    def set_type_definition(self, definition: TypeDefinition) -> None:
        self._type_definitions[definition.id] = definition

    def remove_type_definition(self, type_id: str) -> TypeDefinition | None:
        return self._type_definitions.pop(type_id, None)

    def get_category_for_type(self, type_id: str) -> str | None:
        definition = self._type_definitions.get(type_id)
        if definition is None:
            return None
        return definition.category


__all__ = [
    "CORE_TYPE_DEFINITIONS",
    "Collection",
    "CollectionStore",
    "FileGroup",
    "Record",
    "SETTINGS_CATEGORY",
    "TYPE_CATEGORIES_COLLECTION",
    "TYPE_DEFINITIONS_COLLECTION",
    "TypeDefinition",
    "title_case",
]
