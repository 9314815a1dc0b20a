"""File-store capability consumed by the synchronization engine."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Tuple

from .errors import FileNotFoundInStoreError, FileStoreError, InvalidStorePathError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    """A file reported by :meth:`FileStore.list_files`."""

    name: str
    modified: float = 0.0
    size: int = 0


class FileStore(ABC):
    """Interface describing the file operations the engine relies on.

    Paths are ``/``-separated and relative to the store's projects root, or to
    its modules root when ``is_module`` is ``True``.
    """

    @abstractmethod
    async def list_files(
        self, path: str, since: float = 0.0, *, is_module: bool = False
    ) -> List[FileEntry]:
        """Return files below ``path`` modified after ``since`` (all when ``0``)."""

    @abstractmethod
    async def read_file(self, path: str, *, is_module: bool = False) -> str:
        """Return the text content of ``path``.

        Raises:
            FileNotFoundInStoreError: If the file does not exist.
        """

    async def read_files(
        self, paths: Iterable[str], *, is_module: bool = False
    ) -> Dict[str, str]:
        """Return the contents of every readable path; missing files are omitted."""

        contents: Dict[str, str] = {}
        for path in paths:
            try:
                contents[path] = await self.read_file(path, is_module=is_module)
            except FileNotFoundInStoreError:
                logger.warning("Skipping missing file %s", path)
        return contents

    @abstractmethod
    async def save_file(self, path: str, content: str) -> None:
        """Write ``content`` to ``path``, creating parent folders."""

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        """Remove the file at ``path``."""

    @abstractmethod
    async def delete_folder(self, path: str) -> None:
        """Remove the folder at ``path`` and everything below it."""

    @abstractmethod
    async def rename_file(self, old_path: str, new_path: str) -> None:
        """Move ``old_path`` to ``new_path``."""


def _normalise(path: str) -> str:
    return "/".join(segment for segment in path.replace("\\", "/").split("/") if segment)


def _is_below(path: str, folder: str) -> bool:
    return not folder or path == folder or path.startswith(folder + "/")


class InMemoryFileStore(FileStore):
    """Keep files in local process memory.

    ``clock`` provides modification timestamps so tests can control what a
    ``since`` filter sees.
    """

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        self._files: Dict[str, Tuple[str, float]] = {}
        self._modules: Dict[str, Tuple[str, float]] = {}

    def add_module(self, path: str, content: str) -> None:
        """Seed a read-only module file."""

        self._modules[_normalise(path)] = (content, self._clock())

    def paths(self) -> List[str]:
        return sorted(self._files)

    def contents(self, path: str) -> str:
        return self._files[_normalise(path)][0]

    def exists(self, path: str) -> bool:
        return _normalise(path) in self._files

    async def list_files(
        self, path: str, since: float = 0.0, *, is_module: bool = False
    ) -> List[FileEntry]:
        folder = _normalise(path)
        source = self._modules if is_module else self._files
        return [
            FileEntry(name=name, modified=modified, size=len(content))
            for name, (content, modified) in sorted(source.items())
            if _is_below(name, folder) and modified > since
        ]

    async def read_file(self, path: str, *, is_module: bool = False) -> str:
        source = self._modules if is_module else self._files
        try:
            return source[_normalise(path)][0]
        except KeyError as exc:
            raise FileNotFoundInStoreError(f"File not found: {path}", path=path) from exc

    async def save_file(self, path: str, content: str) -> None:
        if not isinstance(content, str):
            raise FileStoreError(f"Content for {path} must be text", path=path)
        self._files[_normalise(path)] = (content, self._clock())

    async def delete_file(self, path: str) -> None:
        key = _normalise(path)
        if key not in self._files:
            raise FileNotFoundInStoreError(f"File not found: {path}", path=path)
        del self._files[key]

    async def delete_folder(self, path: str) -> None:
        folder = _normalise(path)
        doomed = [name for name in self._files if _is_below(name, folder) and name != folder]
        if not doomed:
            raise FileNotFoundInStoreError(f"Folder not found: {path}", path=path)
        for name in doomed:
            del self._files[name]

    async def rename_file(self, old_path: str, new_path: str) -> None:
        old_key = _normalise(old_path)
        if old_key not in self._files:
            raise FileNotFoundInStoreError(f"File not found: {old_path}", path=old_path)
        content, _ = self._files.pop(old_key)
        self._files[_normalise(new_path)] = (content, self._clock())


class LocalFileStore(FileStore):
    """Persist collection files on the local disk.

    Writes and renames refresh the modification time so that the next
    ``list_files(since=...)`` reports them. Blocking filesystem calls run in
    worker threads via :func:`asyncio.to_thread`.
    """

    def __init__(self, projects_root: Path, modules_root: Path | None = None) -> None:
        self.projects_root = Path(projects_root).expanduser().resolve()
        self.modules_root = (
            Path(modules_root).expanduser().resolve() if modules_root is not None else None
        )
        self.projects_root.mkdir(parents=True, exist_ok=True)

    async def list_files(
        self, path: str, since: float = 0.0, *, is_module: bool = False
    ) -> List[FileEntry]:
        root = self._root(is_module)
        if root is None:
            return []
        folder = self._resolve(path, root=root)
        return await asyncio.to_thread(self._list_sync, folder, root, since)

    async def read_file(self, path: str, *, is_module: bool = False) -> str:
        root = self._root(is_module)
        if root is None:
            raise FileNotFoundInStoreError("No modules root is configured", path=path)
        target = self._resolve(path, root=root)
        return await asyncio.to_thread(self._read_sync, target, path)

    async def save_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(self._save_sync, target, content, path)

    async def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(self._delete_file_sync, target, path)

    async def delete_folder(self, path: str) -> None:
        target = self._resolve(path)
        if target == self.projects_root:
            raise InvalidStorePathError("Refusing to delete the projects root", path=path)
        await asyncio.to_thread(self._delete_folder_sync, target, path)

    async def rename_file(self, old_path: str, new_path: str) -> None:
        source = self._resolve(old_path)
        destination = self._resolve(new_path)
        await asyncio.to_thread(self._rename_sync, source, destination, old_path)

    def _root(self, is_module: bool) -> Path | None:
        return self.modules_root if is_module else self.projects_root

    def _resolve(self, path: str, *, root: Path | None = None) -> Path:
        base = root or self.projects_root
        candidate = (base / _normalise(path)).resolve()
        if candidate != base and base not in candidate.parents:
            raise InvalidStorePathError(f"Path escapes the store root: {path}", path=path)
        return candidate

    @staticmethod
    def _list_sync(folder: Path, root: Path, since: float) -> List[FileEntry]:
        if not folder.exists():
            logger.debug("Directory does not exist yet: %s", folder)
            return []

        entries: List[FileEntry] = []
        for current_root, dirnames, filenames in os.walk(folder):
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            current = Path(current_root)
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                file_path = current / filename
                stats = file_path.stat()
                if stats.st_mtime <= since:
                    continue
                entries.append(
                    FileEntry(
                        name=file_path.relative_to(root).as_posix(),
                        modified=stats.st_mtime,
                        size=stats.st_size,
                    )
                )
        return entries

    @staticmethod
    def _read_sync(target: Path, path: str) -> str:
        if not target.is_file():
            raise FileNotFoundInStoreError(f"File not found: {path}", path=path)
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FileStoreError(f"Failed to read {path}: {exc}", path=path) from exc

    @staticmethod
    def _save_sync(target: Path, content: str, path: str) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise FileStoreError(f"Failed to save {path}: {exc}", path=path) from exc

    @staticmethod
    def _delete_file_sync(target: Path, path: str) -> None:
        if not target.is_file():
            raise FileNotFoundInStoreError(f"File not found: {path}", path=path)
        try:
            target.unlink()
        except OSError as exc:
            raise FileStoreError(f"Failed to delete {path}: {exc}", path=path) from exc

    @staticmethod
    def _delete_folder_sync(target: Path, path: str) -> None:
        if not target.is_dir():
            raise FileNotFoundInStoreError(f"Folder not found: {path}", path=path)
        try:
            shutil.rmtree(target)
        except OSError as exc:
            raise FileStoreError(f"Failed to delete {path}: {exc}", path=path) from exc

    @staticmethod
    def _rename_sync(source: Path, destination: Path, path: str) -> None:
        if not source.is_file():
            raise FileNotFoundInStoreError(f"File not found: {path}", path=path)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, destination)
            os.utime(destination)
        except OSError as exc:
            raise FileStoreError(f"Failed to rename {path}: {exc}", path=path) from exc


__all__ = ["FileEntry", "FileStore", "InMemoryFileStore", "LocalFileStore"]
