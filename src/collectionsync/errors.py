"""Exception hierarchy shared by the synchronization engine."""

from __future__ import annotations


class SyncError(RuntimeError):
    """Base exception raised when a synchronization step cannot complete."""


class FileStoreError(SyncError):
    """Raised when a file-store operation (list/read/write/rename/delete) fails."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class FileNotFoundInStoreError(FileStoreError):
    """Raised when the requested file or folder does not exist in the store."""


class InvalidStorePathError(FileStoreError):
    """Raised when a path would resolve outside of the store's root."""


class DescriptorParseError(SyncError):
    """Raised when a descriptor file does not contain a JSON object."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class SchemaError(SyncError):
    """Raised when a type has no resolvable category to sync into."""

    def __init__(self, type_id: str) -> None:
        super().__init__(f"No category is defined for type '{type_id}'")
        self.type_id = type_id


class PathDecodeError(SyncError, ValueError):
    """Raised when a path does not follow the collection directory convention."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class SyncWriteError(SyncError):
    """Raised when one or more files backing an object could not be written."""

    def __init__(self, type_id: str, object_id: str, errors: list[Exception]) -> None:
        details = "; ".join(str(error) for error in errors)
        super().__init__(f"Failed to write {type_id}/{object_id}: {details}")
        self.type_id = type_id
        self.object_id = object_id
        self.errors = list(errors)


__all__ = [
    "SyncError",
    "FileStoreError",
    "FileNotFoundInStoreError",
    "InvalidStorePathError",
    "DescriptorParseError",
    "SchemaError",
    "PathDecodeError",
    "SyncWriteError",
]
