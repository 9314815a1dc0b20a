"""Configuration for the synchronization engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .resilience import SyncRetryPolicy

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_bool(value: str | None, *, name: str, default: bool) -> bool:
    if value is None or not value.strip():
        return default

    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (true/false).")


def _parse_positive_float(value: str | None, *, name: str) -> float | None:
    if value is None or not value.strip():
        return None

    try:
        parsed = float(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds.") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


def _parse_positive_int(value: str | None, *, name: str) -> int | None:
    if value is None or not value.strip():
        return None

    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive integer.") from exc
    if parsed < 1:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


@dataclass(frozen=True)
class SyncSettings:
    """Runtime settings of a :class:`~collectionsync.engine.SyncEngine`.

    ``sync_interval`` is expressed in seconds. ``operation_timeout`` bounds
    each individual file-store call; ``None`` waits indefinitely.
    """

    project_dir_name: str = "collections"
    sync_interval: float = 3.0
    auto_sync: bool = True
    include_modules: bool = False
    max_attempts: int = 1
    operation_timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.project_dir_name or "/" in self.project_dir_name:
            raise ValueError("project_dir_name must be a single path segment")
        if self.sync_interval <= 0:
            raise ValueError("sync_interval must be greater than zero")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.operation_timeout is not None and self.operation_timeout <= 0:
            raise ValueError("operation_timeout must be greater than zero")

    def retry_policy(self) -> SyncRetryPolicy:
        return SyncRetryPolicy(max_attempts=self.max_attempts)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        project_dir_name = _normalise_string(
            source.get("COLLECTIONSYNC_PROJECT_DIR_NAME"), default="collections"
        )
        sync_interval = _parse_positive_float(
            source.get("COLLECTIONSYNC_SYNC_INTERVAL"), name="COLLECTIONSYNC_SYNC_INTERVAL"
        )
        auto_sync = _parse_bool(
            source.get("COLLECTIONSYNC_AUTO_SYNC"), name="COLLECTIONSYNC_AUTO_SYNC", default=True
        )
        include_modules = _parse_bool(
            source.get("COLLECTIONSYNC_INCLUDE_MODULES"),
            name="COLLECTIONSYNC_INCLUDE_MODULES",
            default=False,
        )
        max_attempts = _parse_positive_int(
            source.get("COLLECTIONSYNC_MAX_ATTEMPTS"), name="COLLECTIONSYNC_MAX_ATTEMPTS"
        )
        operation_timeout = _parse_positive_float(
            source.get("COLLECTIONSYNC_OPERATION_TIMEOUT"),
            name="COLLECTIONSYNC_OPERATION_TIMEOUT",
        )

        return cls(
            project_dir_name=project_dir_name,
            sync_interval=sync_interval if sync_interval is not None else 3.0,
            auto_sync=auto_sync,
            include_modules=include_modules,
            max_attempts=max_attempts if max_attempts is not None else 1,
            operation_timeout=operation_timeout,
        )


__all__ = ["SyncSettings"]
