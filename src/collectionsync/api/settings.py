"""Configuration helpers for deploying the HTTP file service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


@dataclass(frozen=True)
class FileStoreApiSettings:
    """Deployment settings for the file service.

    Empty strings are treated as if the variable was unset. When no projects
    root is configured the service serves ``./projects``.
    """

    projects_root: Path = Path("projects")
    modules_root: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "FileStoreApiSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        projects_root = _normalise_path(source.get("COLLECTIONSYNC_PROJECTS_ROOT"))
        modules_root = _normalise_path(source.get("COLLECTIONSYNC_MODULES_ROOT"))

        return cls(
            projects_root=projects_root if projects_root is not None else Path("projects"),
            modules_root=modules_root,
        )


__all__ = ["FileStoreApiSettings"]
