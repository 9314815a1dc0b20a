"""Mapping between file paths and collection object keys."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

from .errors import PathDecodeError
from .property_schema import (
    DATA_FOLDER,
    DESCRIPTOR_EXTENSION,
    PropertySchema,
)

ObjectKey = Tuple[str, str, str]


@dataclass(frozen=True)
class DecodedPath:
    """Components recovered from a path inside a collection tree.

    ``property_role`` is ``None`` for descriptor files and the configured
    property name for special-property files. ``collection_path`` is the
    prefix of ``path`` that ends with the collection folder.
    """

    path: str
    category: str
    collection_id: str
    object_id: str
    property_role: str | None
    collection_path: str

    @property
    def key(self) -> ObjectKey:
        return (self.category, self.collection_id, self.object_id)

    @property
    def is_descriptor(self) -> bool:
        return self.property_role is None

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def nested(self) -> bool:
        """Return ``True`` when a descriptor sits under the ``data/`` folder."""

        segments = self.path.split("/")
        return self.is_descriptor and len(segments) >= 2 and segments[-2] == DATA_FOLDER


class PathCodec:
    """Decode collection file paths and build them back.

    ``root`` is the ``<projectId>/<projectDirName>`` prefix used by
    :meth:`encode`; decoding works on any path regardless of its prefix.
    """

    def __init__(self, schema: PropertySchema, *, root: str = "") -> None:
        self.schema = schema
        self.root = root.strip("/")

    def decode(self, path: str) -> DecodedPath:
        """Return the components of ``path``.

        Raises:
            PathDecodeError: If the path has fewer than three segments, has an
                unrecognized file type, or yields an empty component.
        """

        parts = [segment for segment in path.replace("\\", "/").split("/") if segment]
        if len(parts) < 3:
            raise PathDecodeError(path, "expected at least three path segments")

        filename = parts[-1]
        role = self._role_for(path, filename)
        subdir_index = self._subdirectory_index(parts)

        if subdir_index >= 2:
            category = parts[subdir_index - 2]
            collection_id = parts[subdir_index - 1]
            collection_path = "/".join(parts[:subdir_index])
        else:
            category = parts[-3]
            collection_id = parts[-2]
            collection_path = "/".join(parts[:-1])

        object_id = self.schema.strip_extension(filename)
        if not category or not collection_id or not object_id:
            raise PathDecodeError(path, "could not resolve category, collection or id")

        return DecodedPath(
            path="/".join(parts),
            category=category,
            collection_id=collection_id,
            object_id=object_id,
            property_role=role,
            collection_path=collection_path,
        )

    def encode(
        self,
        category: str,
        collection_id: str,
        file_base_name: str,
        role: str | None = None,
        *,
        nested: bool = False,
    ) -> str:
        """Return the path of a descriptor (``role=None``) or companion file."""

        base = self.collection_path(category, collection_id)
        if role is None:
            if nested:
                return f"{base}/{DATA_FOLDER}/{file_base_name}.{DESCRIPTOR_EXTENSION}"
            return f"{base}/{file_base_name}.{DESCRIPTOR_EXTENSION}"

        config = self.schema.for_property(role)
        if config is None:
            raise ValueError(f"Unknown property role '{role}'")
        return f"{base}/{config.directory}/{file_base_name}.{config.extension}"

    def collection_path(self, category: str, collection_id: str) -> str:
        if self.root:
            return f"{self.root}/{category}/{collection_id}"
        return f"{category}/{collection_id}"

    def companion_paths(self, collection_path: str, file_base_name: str) -> list[str]:
        """Return every path a record named ``file_base_name`` may occupy."""

        paths = [
            f"{collection_path}/{DATA_FOLDER}/{file_base_name}.{DESCRIPTOR_EXTENSION}",
            f"{collection_path}/{file_base_name}.{DESCRIPTOR_EXTENSION}",
        ]
        paths.extend(
            f"{collection_path}/{config.directory}/{file_base_name}.{config.extension}"
            for config in self.schema
        )
        return paths

    def _role_for(self, path: str, filename: str) -> str | None:
        if filename.endswith(f".{DESCRIPTOR_EXTENSION}"):
            return None
        config = self.schema.for_filename(filename)
        if config is None:
            raise PathDecodeError(path, "unrecognized file type")
        return config.property_name

    def _subdirectory_index(self, parts: list[str]) -> int:
        # The property folder closest to the root and a direct "data" parent
        # compete; the smaller index wins.
        directories = self.schema.directories()
        subdir_index = -1
        for index, segment in enumerate(parts[:-1]):
            if segment in directories:
                subdir_index = index
                break

        data_index = len(parts) - 2 if parts[-2] == DATA_FOLDER else -1
        if data_index != -1 and (subdir_index == -1 or data_index < subdir_index):
            subdir_index = data_index

        return subdir_index


def group_paths(
    codec: PathCodec, paths: Iterable[str]
) -> tuple[dict[ObjectKey, list[DecodedPath]], list[PathDecodeError]]:
    """Group decodable ``paths`` by object key, collecting decode failures."""

    groups: dict[ObjectKey, list[DecodedPath]] = {}
    failures: list[PathDecodeError] = []
    for path in paths:
        try:
            decoded = codec.decode(path)
        except PathDecodeError as exc:
            failures.append(exc)
            continue
        groups.setdefault(decoded.key, []).append(decoded)
    return groups, failures


__all__ = ["DecodedPath", "ObjectKey", "PathCodec", "group_paths"]
