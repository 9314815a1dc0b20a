"""Synchronization engine keeping a collection store and a file tree consistent."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple

from .change_queue import ChangeQueue, PendingChange
from .discovery import DiscoveryReport, TypeSchemaDiscovery
from .errors import DescriptorParseError, FileStoreError, SchemaError, SyncWriteError
from .file_store import FileStore
from .materializer import ObjectMaterializer, parse_descriptor
from .paths import DecodedPath, ObjectKey, PathCodec, group_paths
from .property_schema import PropertySchema
from .records import (
    CollectionStore,
    FileGroup,
    Record,
    TYPE_DEFINITIONS_COLLECTION,
    TypeDefinition,
)
from .rename import RenameReconciler
from .resilience import (
    AsyncSleep,
    Err,
    GuardedFileStore,
    SyncErrorClassifier,
    SyncRetryPolicy,
)
from .scheduler import SyncScheduler
from .settings import SyncSettings
from .splitter import ObjectSplitter, dump_descriptor
from .state import SpecialPropertyIndex, SyncState

logger = logging.getLogger(__name__)

SAVE_OBJECT = "saveObject"
SAVE_PROJECT = "saveProject"
CREATE_TYPE = "createType"
DELETE_TYPE = "deleteType"
PROJECT_LOADED = "projectLoaded"


@dataclass(frozen=True)
class CollectionsChanged:
    """Notification sent to observers after a successful pull."""

    project_id: str
    changed: Tuple[Tuple[str, str], ...] = ()
    full: bool = False


Observer = Callable[[CollectionsChanged], None]


@dataclass
class PullReport:
    """Outcome of one pull cycle."""

    success: bool = False
    listed: int = 0
    changed: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    discovery: DiscoveryReport | None = None


class SyncEngine:
    """Own the :class:`SyncState` of the open project and run push/pull cycles.

    The file store and the collection store are injected. All cycles are
    serialized through one :class:`asyncio.Lock`, which makes the engine the
    single writer of the store and of its caches while a cycle runs.
    """

    def __init__(
        self,
        file_store: FileStore,
        store: CollectionStore,
        *,
        schema: PropertySchema | None = None,
        settings: SyncSettings | None = None,
        retry_policy: SyncRetryPolicy | None = None,
        classifier: SyncErrorClassifier | None = None,
        clock: Callable[[], float] | None = None,
        sleep: AsyncSleep | None = None,
    ) -> None:
        self.settings = settings or SyncSettings()
        self.schema = schema or PropertySchema()
        self.store = store
        self._clock = clock or time.time
        self.files = GuardedFileStore(
            file_store,
            retry_policy=retry_policy or self.settings.retry_policy(),
            classifier=classifier,
            timeout=self.settings.operation_timeout,
            sleep=sleep,
        )

        special_index = SpecialPropertyIndex(
            lambda type_id: self.store.get_collection(type_id).values(),
            self.schema.has_special_properties,
        )
        self.state = SyncState(
            type_has_special_properties=special_index,
            pending_changes=ChangeQueue(clock=self._clock),
        )
        self.discovery = TypeSchemaDiscovery(store)
        self.materializer = ObjectMaterializer(self.schema, special_index)
        self.scheduler = SyncScheduler(
            self.push, self.pull, interval=self.settings.sync_interval
        )
        self._observers: List[Observer] = []
        self._lock = asyncio.Lock()
        self._build_codec()

    # -- Project --

    @property
    def project_id(self) -> str | None:
        return self.store.project_id

    @property
    def project_root(self) -> str:
        return f"{self.project_id}/{self.settings.project_dir_name}"

    def open_project(self, project_id: str) -> None:
        """Switch to ``project_id`` and forget state learned for the previous one."""

        if not project_id or not project_id.strip():
            raise ValueError("project_id must be a non-empty string")
        project_id = project_id.strip()
        if project_id != self.store.project_id:
            self.state.reset()
        self.store.project_id = project_id
        self._build_codec()

    def _build_codec(self) -> None:
        root = self.project_root if self.project_id else ""
        self.codec = PathCodec(self.schema, root=root)
        self.splitter = ObjectSplitter(
            self.codec, self.store, self.state.type_has_special_properties
        )
        self.reconciler = RenameReconciler(self.codec, self.files)

    # -- Observers --

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` for "collections changed" notifications."""

        self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, event: CollectionsChanged) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Collections-changed observer failed")

    # -- Editor signals --

    async def handle_event(self, name: str, detail: Mapping[str, Any] | None = None) -> None:
        """Dispatch an inbound editor signal by ``name``."""

        payload = dict(detail or {})
        if name == SAVE_OBJECT:
            self.save_object(payload["type"], payload["id"], payload["data"])
            await self.push()
        elif name == SAVE_PROJECT:
            await self.save_project()
        elif name == CREATE_TYPE:
            await self.create_type(
                payload["typeId"],
                name=payload.get("typeName"),
                singular=payload.get("typeSingular"),
                category=payload.get("typeCategory"),
            )
        elif name == DELETE_TYPE:
            await self.delete_type(payload["typeId"], category=payload.get("category"))
        elif name == PROJECT_LOADED:
            await self.project_loaded(payload.get("projectId"))
        else:
            raise ValueError(f"Unknown editor event '{name}'")

    # -- Scheduling --

    def start(self) -> None:
        """Start periodic sync when ``auto_sync`` is enabled."""

        if not self.settings.auto_sync:
            logger.info("Automatic sync is disabled")
            return
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    async def sync_now(self) -> None:
        """Run one push-then-pull cycle immediately."""

        await self.scheduler.run_cycle()

    # -- Push --

    def save_object(self, type_id: str, object_id: str, record: Record) -> PendingChange:
        """Record an editor change and queue it for the next flush.

        When the record's ``id`` differs from ``object_id`` the record is moved
        to its new key; its files are renamed during the next pull.
        """

        if not isinstance(record, dict):
            raise TypeError(f"record must be a dict, got {type(record)!r}")

        new_id = record.get("id")
        canonical = new_id if isinstance(new_id, str) and new_id.strip() else object_id
        obsolete: List[str] = []
        category = self.store.get_category_for_type(type_id)
        existed = self.store.get(type_id, object_id) is not None

        if canonical != object_id:
            self.store.rekey(type_id, object_id, canonical)
            self.state.pending_changes.discard(type_id, object_id)
            first_id = self.state.pending_renames.pop((type_id, object_id), object_id)
            if self.state.type_has_special_properties.get(type_id):
                self.state.pending_renames[(type_id, canonical)] = first_id
            elif category:
                obsolete.append(self.codec.encode(category, type_id, object_id))

        if (
            category
            and self.schema.has_special_properties(record)
            and not self.state.type_has_special_properties.get(type_id)
        ):
            self._migrate_to_nested(type_id, canonical, category)
            flat_path = self.codec.encode(category, type_id, object_id)
            if existed and flat_path not in obsolete:
                obsolete.append(flat_path)

        self.store.put(type_id, canonical, record)
        return self.state.pending_changes.queue(
            type_id, canonical, record, obsolete_paths=obsolete
        )

    def _migrate_to_nested(self, type_id: str, object_id: str, category: str) -> None:
        # The first special property of a type moves every record of that type
        # from the flat layout to the nested one.
        self.state.type_has_special_properties.mark(type_id)
        others = {
            other_id: other
            for other_id, other in self.store.get_collection(type_id).items()
            if other_id != object_id
        }
        for other_id, other in others.items():
            self.state.pending_changes.queue(
                type_id,
                other_id,
                other,
                obsolete_paths=[self.codec.encode(category, type_id, other_id)],
            )
        if others:
            logger.info("Moving %d %s records to the nested layout", len(others), type_id)

    async def save_project(self) -> Tuple[int, int]:
        """Queue every record of the open project and flush."""

        if not self.project_id:
            logger.info("No project ID available")
            return 0, 0
        logger.info("Saving entire project to filesystem: %s", self.project_id)
        for collection_id, object_id, record in list(self.store.iter_records()):
            self.state.pending_changes.queue(collection_id, object_id, record)
        return await self.push()

    async def push(self) -> Tuple[int, int]:
        """Flush the change queue. Returns ``(written, failed)``."""

        if not self.project_id:
            logger.info("No project ID available")
            return 0, 0
        async with self._lock:
            return await self.state.pending_changes.flush(self._write_change)

    async def _write_change(self, change: PendingChange) -> bool:
        try:
            plan = self.splitter.split(change.type_id, change.object_id, change.record)
        except SchemaError:
            logger.warning(
                "Skipping sync for type=%s, id=%s: no valid category found",
                change.type_id,
                change.object_id,
            )
            return True
        except ValueError as exc:
            logger.error("Invalid change %s/%s: %s", change.type_id, change.object_id, exc)
            return True

        try:
            await self.splitter.write(plan, self.files.save_file)
        except SyncWriteError as exc:
            logger.error("%s", exc)
            return False

        written = set(plan.paths())
        for path in change.obsolete_paths:
            if path not in written:
                await self.files.delete_file(path)
        return True

    async def _persist(self, type_id: str, object_id: str, record: Record) -> bool:
        try:
            plan = self.splitter.split(type_id, object_id, record)
            await self.splitter.write(plan, self.files.save_file)
        except (SchemaError, SyncWriteError) as exc:
            logger.error("Failed to persist %s/%s: %s", type_id, object_id, exc)
            return False
        return True

    # -- Pull --

    async def pull(self) -> PullReport:
        """Materialize files changed since the last sync."""

        if not self.project_id:
            logger.info("No project ID available")
            return PullReport()
        async with self._lock:
            return await self._pull(since=self.state.last_sync_timestamp, full=False)

    async def import_project(self, project_id: str | None = None) -> PullReport:
        """Load the whole project tree (and shared modules when enabled)."""

        if project_id is not None:
            self.open_project(project_id)
        if not self.project_id:
            logger.info("No project ID available")
            return PullReport()

        async with self._lock:
            if self.settings.include_modules:
                await self._pull(since=0.0, full=False, is_module=True)
            return await self._pull(since=0.0, full=True)

    async def project_loaded(self, project_id: str | None = None) -> PullReport | None:
        """Import the project, or write it out when the tree does not exist yet."""

        if project_id is not None:
            self.open_project(project_id)
        if not self.project_id:
            logger.info("No project ID available")
            return None

        listing = await self.files.list_files(self.project_root, 0.0)
        if isinstance(listing, Err):
            return None
        if not listing.value:
            logger.info("Project does not exist in filesystem yet; initializing it")
            await self.save_project()
            return None
        return await self.import_project()

    async def _pull(self, *, since: float, full: bool, is_module: bool = False) -> PullReport:
        report = PullReport()
        started = self._clock()
        root = "" if is_module else self.project_root
        listing = await self.files.list_files(root, since, is_module=is_module)
        if isinstance(listing, Err):
            return report

        entries = listing.value
        report.listed = len(entries)
        groups, failures = group_paths(self.codec, [entry.name for entry in entries])
        for failure in failures:
            logger.warning("Skipping file: %s", failure)

        observed: Dict[str, str] = {}
        for decoded_files in groups.values():
            decoded = decoded_files[0]
            observed[decoded.collection_id] = decoded.category
            if not is_module:
                self.state.observe_category(decoded.collection_id, decoded.category)

        if groups:
            paths = [decoded.path for files in groups.values() for decoded in files]
            read = await self.files.read_files(paths, is_module=is_module)
            if isinstance(read, Err):
                return report
            await self._apply_groups(groups, dict(read.value), report, is_module=is_module)
        else:
            logger.debug("No changes detected in filesystem")

        if not is_module:
            self.state.last_sync_timestamp = started
            report.discovery = self.discovery.run(observed, full=full)
            # Repaired metadata is queued so a failed write is retried by the
            # next flush.
            repaired = [
                self.state.pending_changes.queue(type_id, object_id, record).key
                for type_id, object_id, record in report.discovery.persist
            ]
            if repaired:
                await self.state.pending_changes.flush(self._write_change, keys=repaired)

        report.success = True
        self._notify(
            CollectionsChanged(
                project_id=self.project_id or "",
                changed=tuple(report.changed),
                full=full,
            )
        )
        if report.changed:
            logger.info("Filesystem sync updated %d objects", len(report.changed))
        return report

    async def _apply_groups(
        self,
        groups: Mapping[ObjectKey, List[DecodedPath]],
        contents: Dict[str, str],
        report: PullReport,
        *,
        is_module: bool,
    ) -> None:
        # Groups with a descriptor first so renames are settled before
        # companion-only groups are looked at.
        ordered = sorted(
            groups.items(),
            key=lambda item: (not any(d.is_descriptor for d in item[1]), item[0]),
        )
        # The layout is decided per type, so mark nested types before any
        # record of them is materialized.
        for decoded_files in groups.values():
            if any(d.nested or not d.is_descriptor for d in decoded_files):
                self.state.type_has_special_properties.mark(decoded_files[0].collection_id)

        renamed_away: set[str] = set()
        for key, decoded_files in ordered:
            remaining = [d for d in decoded_files if d.path not in renamed_away]
            if not remaining:
                continue
            group = FileGroup.from_decoded(remaining)
            try:
                changed = await self._apply_group(
                    group, contents, renamed_away, is_module=is_module
                )
            except (DescriptorParseError, FileStoreError) as exc:
                logger.warning("Skipping %s: %s", "/".join(key), exc)
                report.skipped.append("/".join(key))
                continue
            if changed is not None:
                report.changed.append(changed)

    async def _apply_group(
        self,
        group: FileGroup,
        contents: Dict[str, str],
        renamed_away: set[str],
        *,
        is_module: bool,
    ) -> Tuple[str, str] | None:
        collection_id = group.collection_id
        if group.descriptor is not None:
            canonical = self.materializer.canonical_id(group, contents)
        else:
            canonical = (
                self.store.find_by_file_name(collection_id, group.base_name)
                or group.object_id
            )

        previous_id = None
        if not is_module and group.descriptor is not None:
            previous_id = self._adopt_edited_id(group, canonical)

        existing = self.store.get(collection_id, canonical)
        before = copy.deepcopy(existing) if existing is not None else None
        if not is_module and group.descriptor is not None:
            group = await self._reconcile_names(
                group, contents, canonical, existing, renamed_away
            )

        result = self.materializer.materialize(
            group, contents, existing, object_id=canonical
        )
        if result.record == before and previous_id is None:
            return None
        self.store.put(collection_id, result.object_id, result.record)
        descriptor = group.descriptor
        if previous_id is not None and descriptor is not None and not descriptor.nested:
            # A flat descriptor is named after its id; write it under the new
            # id and drop the old file on the next flush.
            self.state.pending_changes.queue(
                collection_id,
                result.object_id,
                result.record,
                obsolete_paths=[descriptor.path],
            )
        return (collection_id, result.object_id)

    def _adopt_edited_id(self, group: FileGroup, canonical: str) -> str | None:
        """Rekey the record behind ``group`` when its descriptor id was edited on disk.

        Returns the id the record was stored under, or ``None`` when nothing moved.
        """

        collection_id = group.collection_id
        descriptor = group.descriptor
        if descriptor is None:
            return None
        if descriptor.nested:
            previous = self.store.find_by_file_name(collection_id, group.base_name)
        elif self.store.get(collection_id, group.base_name) is not None:
            previous = group.base_name
        else:
            previous = None

        if (
            previous is None
            or previous == canonical
            or self.store.get(collection_id, canonical) is not None
            or (collection_id, previous) in self.state.pending_changes
            or (collection_id, previous) in self.state.pending_renames
        ):
            return None

        logger.info(
            "Descriptor %s now carries id %s; moving record %s",
            descriptor.path,
            canonical,
            previous,
        )
        self.store.rekey(collection_id, previous, canonical)
        return previous

    async def _reconcile_names(
        self,
        group: FileGroup,
        contents: Dict[str, str],
        canonical: str,
        existing: Record | None,
        renamed_away: set[str],
    ) -> FileGroup:
        descriptor = group.descriptor
        if descriptor is None or not descriptor.nested or descriptor.path not in contents:
            return group

        key = (group.collection_id, canonical)
        disk_base = descriptor.object_id
        known = existing.get("fileName") if existing is not None else None
        if key in self.state.pending_renames and disk_base != canonical:
            old_base, new_base = disk_base, canonical
        elif isinstance(known, str) and known and known != disk_base:
            old_base, new_base = known, disk_base
        else:
            self.state.pending_renames.pop(key, None)
            return group

        logger.info("Detected rename: %s -> %s for id: %s", old_base, new_base, canonical)
        payload = parse_descriptor(descriptor.path, contents[descriptor.path])
        outcome = await self.reconciler.reconcile(
            descriptor.collection_path,
            old_base,
            new_base,
            descriptor=payload,
            record=existing,
        )
        if outcome.reconciled:
            self.state.pending_renames.pop(key, None)
        renamed_away.update(outcome.renamed)

        files: List[DecodedPath] = []
        for decoded in group.files:
            new_path = outcome.renamed.get(decoded.path)
            if new_path is None:
                files.append(decoded)
                continue
            contents[new_path] = contents[decoded.path]
            files.append(self.codec.decode(new_path))

        if outcome.descriptor_path is not None:
            payload["fileName"] = new_base
            contents[outcome.descriptor_path] = dump_descriptor(payload)
            if all(decoded.path != outcome.descriptor_path for decoded in files):
                files = [d for d in files if not d.is_descriptor]
                files.append(self.codec.decode(outcome.descriptor_path))
        return FileGroup.from_decoded(files)

    # -- Type and object lifecycle --

    async def create_type(
        self,
        type_id: str,
        *,
        name: str | None = None,
        singular: str | None = None,
        category: str | None = None,
        is_core: bool = False,
    ) -> TypeDefinition:
        """Create a type definition and persist it."""

        definition = TypeDefinition(
            id=type_id,
            name=name or "",
            singular=singular or "",
            category=category or "Uncategorized",
            is_core=is_core,
        )
        self.store.set_type_definition(definition)
        self.store.ensure_collection(definition.id)
        self.state.type_has_special_properties.invalidate(definition.id)

        payload = definition.to_payload()
        self.store.put(TYPE_DEFINITIONS_COLLECTION, definition.id, payload)
        if self.project_id:
            async with self._lock:
                await self._persist(TYPE_DEFINITIONS_COLLECTION, definition.id, payload)
        return definition

    async def delete_type(self, type_id: str, *, category: str | None = None) -> None:
        """Remove a type, its collection folder and its definition file."""

        resolved_category = category or self.store.get_category_for_type(type_id)
        definitions_nested = self.state.type_has_special_properties.get(
            TYPE_DEFINITIONS_COLLECTION
        )
        definitions_category = self.store.get_category_for_type(TYPE_DEFINITIONS_COLLECTION)

        self.store.remove_type_definition(type_id)
        self.store.remove(TYPE_DEFINITIONS_COLLECTION, type_id)
        self.store.drop_collection(type_id)
        self.state.pending_changes.discard_type(type_id)
        self.state.type_has_special_properties.invalidate(type_id)
        self.state.collection_categories.pop(type_id, None)

        if not self.project_id:
            return
        async with self._lock:
            if definitions_category:
                await self.files.delete_file(
                    self.codec.encode(
                        definitions_category,
                        TYPE_DEFINITIONS_COLLECTION,
                        type_id,
                        nested=definitions_nested,
                    )
                )
            if resolved_category:
                await self.files.delete_folder(
                    self.codec.collection_path(resolved_category, type_id)
                )

    async def delete_object(self, type_id: str, object_id: str) -> bool:
        """Remove a record from memory and delete every file backing it."""

        record = self.store.remove(type_id, object_id)
        self.state.pending_changes.discard(type_id, object_id)
        self.state.pending_renames.pop((type_id, object_id), None)
        if record is None:
            return False

        category = self.store.get_category_for_type(type_id)
        if not category or not self.project_id:
            return True

        file_name = record.get("fileName")
        base = file_name if isinstance(file_name, str) and file_name else object_id
        collection_path = self.codec.collection_path(category, type_id)
        async with self._lock:
            listing = await self.files.list_files(collection_path, 0.0)
            if isinstance(listing, Err):
                return True
            existing = {entry.name for entry in listing.value}
            doomed = [
                path
                for path in self.codec.companion_paths(collection_path, base)
                if path in existing
            ]
            await asyncio.gather(*(self.files.delete_file(path) for path in doomed))
        return True

    def duplicate_object(self, type_id: str, source_id: str, new_id: str) -> PendingChange:
        """Copy ``source_id`` to ``new_id`` and queue the copy for writing."""

        source = self.store.get(type_id, source_id)
        if source is None:
            raise KeyError(f"No {type_id} record with id '{source_id}'")
        if self.store.get(type_id, new_id) is not None:
            raise ValueError(f"A {type_id} record with id '{new_id}' already exists")

        duplicate = copy.deepcopy(source)
        duplicate["id"] = new_id
        duplicate.pop("fileName", None)
        for config in self.schema:
            duplicate.pop(self.schema.file_path_field(config.property_name), None)
        return self.save_object(type_id, new_id, duplicate)


def build_engine(
    file_store: FileStore,
    project_id: str | None = None,
    *,
    settings: SyncSettings | None = None,
    schema: PropertySchema | None = None,
    type_definitions: Iterable[TypeDefinition] | None = None,
) -> SyncEngine:
    """Create an engine with an empty collection store for ``project_id``."""

    store = CollectionStore(project_id, type_definitions=type_definitions)
    return SyncEngine(file_store, store, schema=schema, settings=settings)


__all__ = [
    "CREATE_TYPE",
    "CollectionsChanged",
    "DELETE_TYPE",
    "PROJECT_LOADED",
    "PullReport",
    "SAVE_OBJECT",
    "SAVE_PROJECT",
    "SyncEngine",
    "build_engine",
]
