"""HTTP endpoints mirroring the :class:`~collectionsync.file_store.FileStore` API."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import PlainTextResponse

from ..errors import FileNotFoundInStoreError, FileStoreError, InvalidStorePathError
from ..file_store import FileStore, LocalFileStore
from .settings import FileStoreApiSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ListFilesRequest(_CamelModel):
    """Folder to list and the modification time files must be newer than."""

    path: str = ""
    since: float = Field(default=0.0, ge=0.0)
    is_module: bool = Field(default=False, alias="isModule")


class FileEntryResource(BaseModel):
    name: str
    modified: float
    size: int


class ReadFileRequest(_CamelModel):
    path: str = Field(..., min_length=1)
    is_module: bool = Field(default=False, alias="isModule")


class ReadFilesRequest(_CamelModel):
    files: list[str] = Field(default_factory=list)
    is_module: bool = Field(default=False, alias="isModule")


class ReadFilesResponse(BaseModel):
    success: bool = True
    files: dict[str, str] = Field(default_factory=dict)


class SaveFileRequest(BaseModel):
    path: str = Field(..., min_length=1)
    content: str


class PathRequest(BaseModel):
    path: str = Field(..., min_length=1)


class RenameFileRequest(_CamelModel):
    old_path: str = Field(..., min_length=1, alias="oldPath")
    new_path: str = Field(..., min_length=1, alias="newPath")


class OperationResponse(BaseModel):
    success: bool = True


async def _guard(operation: Callable[[], Awaitable[T]]) -> T:
    try:
        return await operation()
    except FileNotFoundInStoreError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidStorePathError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except FileStoreError as exc:
        logger.error("File store operation failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def create_app(
    file_store: FileStore | None = None,
    *,
    settings: FileStoreApiSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app serving ``file_store``.

    When no store is given a :class:`LocalFileStore` is built from
    ``settings`` (or :meth:`FileStoreApiSettings.from_env`).
    """

    store = file_store
    if store is None:
        resolved_settings = settings or FileStoreApiSettings.from_env()
        store = LocalFileStore(
            resolved_settings.projects_root,
            modules_root=resolved_settings.modules_root,
        )

    app = FastAPI(title="Collection File Service")

    @app.post("/list-files", response_model=list[FileEntryResource], tags=["Files"])
    async def list_files(payload: ListFilesRequest) -> list[FileEntryResource]:
        entries = await _guard(
            lambda: store.list_files(
                payload.path, payload.since, is_module=payload.is_module
            )
        )
        return [
            FileEntryResource(name=entry.name, modified=entry.modified, size=entry.size)
            for entry in entries
        ]

    @app.post("/read-file", response_class=PlainTextResponse, tags=["Files"])
    async def read_file(payload: ReadFileRequest) -> PlainTextResponse:
        content = await _guard(
            lambda: store.read_file(payload.path, is_module=payload.is_module)
        )
        return PlainTextResponse(content)

    @app.post("/read-files", response_model=ReadFilesResponse, tags=["Files"])
    async def read_files(payload: ReadFilesRequest) -> ReadFilesResponse:
        files = await _guard(
            lambda: store.read_files(payload.files, is_module=payload.is_module)
        )
        return ReadFilesResponse(files=files)

    @app.post("/save-file", response_model=OperationResponse, tags=["Files"])
    async def save_file(payload: SaveFileRequest) -> OperationResponse:
        await _guard(lambda: store.save_file(payload.path, payload.content))
        return OperationResponse()

    @app.post("/delete-file", response_model=OperationResponse, tags=["Files"])
    async def delete_file(payload: PathRequest) -> OperationResponse:
        await _guard(lambda: store.delete_file(payload.path))
        return OperationResponse()

    @app.post("/delete-folder", response_model=OperationResponse, tags=["Files"])
    async def delete_folder(payload: PathRequest) -> OperationResponse:
        await _guard(lambda: store.delete_folder(payload.path))
        return OperationResponse()

    @app.post("/rename-file", response_model=OperationResponse, tags=["Files"])
    async def rename_file(payload: RenameFileRequest) -> OperationResponse:
        await _guard(lambda: store.rename_file(payload.old_path, payload.new_path))
        return OperationResponse()

    return app


__all__ = [
    "FileEntryResource",
    "ListFilesRequest",
    "OperationResponse",
    "PathRequest",
    "ReadFileRequest",
    "ReadFilesRequest",
    "ReadFilesResponse",
    "RenameFileRequest",
    "SaveFileRequest",
    "create_app",
]
