"""Repair category and type metadata so it matches the folders found on disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Tuple

from .records import (
    CollectionStore,
    Record,
    TYPE_CATEGORIES_COLLECTION,
    TYPE_DEFINITIONS_COLLECTION,
    TypeDefinition,
    title_case,
)

logger = logging.getLogger(__name__)

PersistRequest = Tuple[str, str, Record]


@dataclass
class DiscoveryReport:
    """Changes made by one discovery pass.

    ``persist`` lists ``(type, id, record)`` entries that must be written
    back to the file store.
    """

    created_categories: List[str] = field(default_factory=list)
    created_types: List[str] = field(default_factory=list)
    repaired_types: List[str] = field(default_factory=list)
    dropped_types: List[str] = field(default_factory=list)
    persist: List[PersistRequest] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.created_categories
            or self.created_types
            or self.repaired_types
            or self.dropped_types
        )


class TypeSchemaDiscovery:
    """Infer category and type definitions from observed folder placement.

    Metadata is always repaired to match disk; records are never moved.
    """

    def __init__(self, store: CollectionStore) -> None:
        self.store = store

    def load_definitions(self) -> None:
        """Refresh the active set from the ``objectTypeDefinitions`` records."""

        for object_id, payload in self.store.get_collection(TYPE_DEFINITIONS_COLLECTION).items():
            try:
                definition = TypeDefinition.from_payload({"id": object_id, **payload})
            except ValueError as exc:
                logger.warning("Ignoring invalid type definition %s: %s", object_id, exc)
                continue
            current = self.store.get_type_definition(definition.id)
            if current is not None and current.is_core and not definition.is_core:
                definition = TypeDefinition(
                    id=definition.id,
                    name=definition.name,
                    singular=definition.singular,
                    category=definition.category,
                    is_core=True,
                )
            self.store.set_type_definition(definition)

    def run(self, observed: Mapping[str, str], *, full: bool = False) -> DiscoveryReport:
        """Reconcile metadata against ``observed`` ``collection -> category``.

        Args:
            observed: Category folder each collection was found under.
            full: ``True`` after a full import; definitions of collections
                absent from ``observed`` are then dropped from the active set.
        """

        report = DiscoveryReport()
        if full:
            self.load_definitions()

        self._synthesize_categories(observed, report)
        self._repair_types(observed, report)
        if full:
            self._drop_missing(observed, report)

        if report.changed:
            logger.info(
                "Discovery: %d categories created, %d types created, %d repaired, %d dropped",
                len(report.created_categories),
                len(report.created_types),
                len(report.repaired_types),
                len(report.dropped_types),
            )
        return report

    def _synthesize_categories(
        self, observed: Mapping[str, str], report: DiscoveryReport
    ) -> None:
        known = self.store.get_collection(TYPE_CATEGORIES_COLLECTION)
        for category in sorted(set(observed.values())):
            if category in known:
                continue
            entry: Record = {"id": category, "name": title_case(category)}
            self.store.put(TYPE_CATEGORIES_COLLECTION, category, entry)
            report.created_categories.append(category)
            report.persist.append((TYPE_CATEGORIES_COLLECTION, category, entry))

    def _repair_types(self, observed: Mapping[str, str], report: DiscoveryReport) -> None:
        for collection_id, category in sorted(observed.items()):
            definition = self.store.get_type_definition(collection_id)
            if definition is None:
                definition = TypeDefinition(id=collection_id, category=category)
                report.created_types.append(collection_id)
            elif definition.category != category:
                logger.info(
                    "Type %s found under %s but recorded as %s; updating definition",
                    collection_id,
                    category,
                    definition.category,
                )
                definition = definition.with_category(category)
                report.repaired_types.append(collection_id)
            else:
                continue

            self.store.set_type_definition(definition)
            existing = self.store.get(TYPE_DEFINITIONS_COLLECTION, collection_id) or {}
            payload = {**existing, **definition.to_payload()}
            self.store.put(TYPE_DEFINITIONS_COLLECTION, collection_id, payload)
            report.persist.append((TYPE_DEFINITIONS_COLLECTION, collection_id, payload))

    def _drop_missing(self, observed: Mapping[str, str], report: DiscoveryReport) -> None:
        for definition in self.store.type_definitions():
            if definition.is_core or definition.id in observed:
                continue
            self.store.remove_type_definition(definition.id)
            report.dropped_types.append(definition.id)


__all__ = ["DiscoveryReport", "PersistRequest", "TypeSchemaDiscovery"]
