"""File store reached over the HTTP file service."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

import httpx

from .errors import FileNotFoundInStoreError, FileStoreError
from .file_store import FileEntry, FileStore


class HttpFileStore(FileStore):
    """Talk to :func:`collectionsync.api.create_app` (or a compatible server).

    Pass ``client`` to reuse an existing :class:`httpx.AsyncClient`, for
    example one bound to an ASGI transport in tests; otherwise a client is
    created for ``base_url`` and closed by :meth:`aclose`.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpFileStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_files(
        self, path: str, since: float = 0.0, *, is_module: bool = False
    ) -> List[FileEntry]:
        response = await self._post(
            "/list-files", {"path": path, "since": since, "isModule": is_module}, path
        )
        payload = response.json()
        if not isinstance(payload, list):
            raise FileStoreError("list-files returned an unexpected payload", path=path)
        return [
            FileEntry(
                name=str(item["name"]),
                modified=float(item.get("modified", 0.0)),
                size=int(item.get("size", 0)),
            )
            for item in payload
        ]

    async def read_file(self, path: str, *, is_module: bool = False) -> str:
        response = await self._post("/read-file", {"path": path, "isModule": is_module}, path)
        return response.text

    async def read_files(
        self, paths: Iterable[str], *, is_module: bool = False
    ) -> Dict[str, str]:
        requested = list(paths)
        response = await self._post(
            "/read-files", {"files": requested, "isModule": is_module}, None
        )
        payload = response.json()
        if not isinstance(payload, Mapping) or not payload.get("success"):
            raise FileStoreError("read-files did not succeed")
        files = payload.get("files") or {}
        return {str(name): str(content) for name, content in files.items()}

    async def save_file(self, path: str, content: str) -> None:
        await self._post("/save-file", {"path": path, "content": content}, path)

    async def delete_file(self, path: str) -> None:
        await self._post("/delete-file", {"path": path}, path)

    async def delete_folder(self, path: str) -> None:
        await self._post("/delete-folder", {"path": path}, path)

    async def rename_file(self, old_path: str, new_path: str) -> None:
        await self._post(
            "/rename-file", {"oldPath": old_path, "newPath": new_path}, old_path
        )

    async def _post(
        self, endpoint: str, body: Mapping[str, Any], path: str | None
    ) -> httpx.Response:
        try:
            response = await self._client.post(endpoint, json=dict(body))
        except httpx.HTTPError as exc:
            raise FileStoreError(f"{endpoint} request failed: {exc}", path=path) from exc

        if response.status_code == 404:
            raise FileNotFoundInStoreError(_error_detail(response), path=path)
        if response.is_error:
            raise FileStoreError(
                f"{endpoint} failed with {response.status_code}: {_error_detail(response)}",
                path=path,
            )
        return response


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, Mapping):
        return str(payload.get("detail") or payload.get("error") or payload)
    return str(payload)


__all__ = ["HttpFileStore"]
