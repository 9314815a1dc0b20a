"""Keep typed in-memory collections and a project folder tree consistent."""

from .change_queue import ChangeQueue, PendingChange
from .discovery import DiscoveryReport, TypeSchemaDiscovery
from .engine import CollectionsChanged, PullReport, SyncEngine, build_engine
from .errors import (
    DescriptorParseError,
    FileNotFoundInStoreError,
    FileStoreError,
    InvalidStorePathError,
    PathDecodeError,
    SchemaError,
    SyncError,
    SyncWriteError,
)
from .file_store import FileEntry, FileStore, InMemoryFileStore, LocalFileStore
from .http_file_store import HttpFileStore
from .materializer import MaterializedObject, ObjectMaterializer
from .paths import DecodedPath, PathCodec
from .property_schema import PropertyConfig, PropertySchema
from .records import CollectionStore, FileGroup, TypeDefinition
from .rename import RenameOutcome, RenameReconciler
from .resilience import (
    Err,
    GuardedFileStore,
    Ok,
    SyncErrorCategory,
    SyncErrorClassifier,
    SyncRetryPolicy,
    call_file_store,
)
from .scheduler import SyncScheduler
from .settings import SyncSettings
from .splitter import ObjectSplitter, SplitPlan
from .state import SpecialPropertyIndex, SyncState

__all__ = [
    "ChangeQueue",
    "CollectionStore",
    "CollectionsChanged",
    "DecodedPath",
    "DescriptorParseError",
    "DiscoveryReport",
    "Err",
    "FileEntry",
    "FileGroup",
    "FileNotFoundInStoreError",
    "FileStore",
    "FileStoreError",
    "GuardedFileStore",
    "HttpFileStore",
    "InMemoryFileStore",
    "InvalidStorePathError",
    "LocalFileStore",
    "MaterializedObject",
    "ObjectMaterializer",
    "ObjectSplitter",
    "Ok",
    "PathCodec",
    "PathDecodeError",
    "PendingChange",
    "PropertyConfig",
    "PropertySchema",
    "PullReport",
    "RenameOutcome",
    "RenameReconciler",
    "SchemaError",
    "SpecialPropertyIndex",
    "SplitPlan",
    "SyncEngine",
    "SyncError",
    "SyncErrorCategory",
    "SyncErrorClassifier",
    "SyncRetryPolicy",
    "SyncScheduler",
    "SyncSettings",
    "SyncState",
    "SyncWriteError",
    "TypeDefinition",
    "TypeSchemaDiscovery",
    "build_engine",
    "call_file_store",
]
