"""Explicit results, error classification and retries for file-store calls."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Generic, List, Sequence, TypeVar, Union

from .errors import FileNotFoundInStoreError, FileStoreError
from .file_store import FileEntry, FileStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome of a file-store call."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome of a file-store call."""

    error: Exception

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


class SyncErrorCategory(str, Enum):
    """High-level categories used to decide whether a failure is retried."""

    TRANSIENT = "transient"
    FATAL = "fatal"

    def is_retryable(self) -> bool:
        return self is SyncErrorCategory.TRANSIENT


class SyncErrorClassifier:
    """Map exceptions raised by a file store to :class:`SyncErrorCategory`."""

    def __init__(
        self,
        *,
        default_category: SyncErrorCategory = SyncErrorCategory.FATAL,
        rules: Sequence[tuple[SyncErrorCategory, type[Exception]]] | None = None,
    ) -> None:
        self._default_category = default_category
        self._rules: list[tuple[type[Exception], SyncErrorCategory]] = []

        if rules is not None:
            for category, exc_type in rules:
                self.register(category, exc_type)

    def register(
        self, category: SyncErrorCategory, *exception_types: type[Exception]
    ) -> None:
        """Register one or more exception types for ``category``."""

        if not exception_types:
            raise ValueError("at least one exception type must be provided")

        for exc_type in exception_types:
            if not isinstance(exc_type, type) or not issubclass(exc_type, Exception):
                raise TypeError(
                    "exception_types must be Exception subclasses, " f"got {exc_type!r}"
                )
            self._rules.append((exc_type, category))

    def classify(self, error: Exception) -> SyncErrorCategory:
        for exc_type, category in self._rules:
            if isinstance(error, exc_type):
                return category
        return self._default_category

    @classmethod
    def default(cls) -> "SyncErrorClassifier":
        """Missing files are fatal; other store and timeout failures are transient."""

        classifier = cls()
        classifier.register(SyncErrorCategory.FATAL, FileNotFoundInStoreError)
        classifier.register(
            SyncErrorCategory.TRANSIENT, FileStoreError, asyncio.TimeoutError, OSError
        )
        return classifier


@dataclass(frozen=True)
class SyncRetryPolicy:
    """Configuration controlling retries of individual file-store calls.

    The default performs a single attempt, so failures surface immediately
    and the object is picked up again on the next cycle.
    """

    max_attempts: int = 1
    initial_backoff: float = 0.25
    backoff_multiplier: float = 2.0
    max_backoff: float = 5.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_backoff < 0:
            raise ValueError("initial_backoff must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if self.max_backoff < 0:
            raise ValueError("max_backoff must be non-negative")
        if self.jitter < 0:
            raise ValueError("jitter must be non-negative")

    def compute_backoff(
        self, attempt: int, *, random_func: Callable[[], float] | None = None
    ) -> float:
        """Return the backoff delay for ``attempt`` (1-indexed)."""

        if attempt < 1:
            raise ValueError("attempt must be >= 1")

        base_delay = self.initial_backoff * (self.backoff_multiplier ** (attempt - 1))
        delay = min(base_delay, self.max_backoff)

        if self.jitter <= 0 or delay == 0:
            return delay

        rng = random_func or random.random
        offset = (rng() * 2 - 1) * (delay * self.jitter)
        return max(0.0, delay + offset)


AsyncSleep = Callable[[float], Awaitable[None]]


async def call_file_store(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    retry_policy: SyncRetryPolicy | None = None,
    classifier: SyncErrorClassifier | None = None,
    timeout: float | None = None,
    sleep: AsyncSleep | None = None,
    random_func: Callable[[], float] | None = None,
) -> Result[T]:
    """Run ``operation`` with optional timeout and retries, returning a result.

    Exceptions never escape: the final failure is logged and returned as
    :class:`Err`.
    """

    policy = retry_policy or SyncRetryPolicy()
    error_classifier = classifier or SyncErrorClassifier.default()
    sleep_fn = sleep or asyncio.sleep

    attempt = 1
    while True:
        try:
            if timeout is None:
                value = await operation()
            else:
                value = await asyncio.wait_for(operation(), timeout)
            return Ok(value)
        except Exception as error:
            category = error_classifier.classify(error)
            if not category.is_retryable() or attempt >= policy.max_attempts:
                logger.warning("%s failed after %d attempt(s): %s", description, attempt, error)
                return Err(error)

            delay = policy.compute_backoff(attempt, random_func=random_func)
            logger.info("%s failed (%s); retrying in %.2fs", description, error, delay)
            if delay > 0:
                await sleep_fn(delay)

            attempt += 1


class GuardedFileStore:
    """Wrap a :class:`FileStore` so every call returns an :class:`Ok` or :class:`Err`.

    The retry policy, classifier and per-call timeout are applied uniformly to
    each operation.
    """

    def __init__(
        self,
        store: FileStore,
        *,
        retry_policy: SyncRetryPolicy | None = None,
        classifier: SyncErrorClassifier | None = None,
        timeout: float | None = None,
        sleep: AsyncSleep | None = None,
    ) -> None:
        self.store = store
        self.retry_policy = retry_policy or SyncRetryPolicy()
        self.classifier = classifier or SyncErrorClassifier.default()
        self.timeout = timeout
        self._sleep = sleep

    async def _call(
        self, operation: Callable[[], Awaitable[T]], description: str
    ) -> Result[T]:
        return await call_file_store(
            operation,
            description=description,
            retry_policy=self.retry_policy,
            classifier=self.classifier,
            timeout=self.timeout,
            sleep=self._sleep,
        )

    async def list_files(
        self, path: str, since: float = 0.0, *, is_module: bool = False
    ) -> Result[List[FileEntry]]:
        return await self._call(
            lambda: self.store.list_files(path, since, is_module=is_module),
            f"list-files {path!r}",
        )

    async def read_files(
        self, paths: Sequence[str], *, is_module: bool = False
    ) -> Result[Dict[str, str]]:
        return await self._call(
            lambda: self.store.read_files(paths, is_module=is_module),
            f"read-files ({len(paths)} files)",
        )

    async def save_file(self, path: str, content: str) -> Result[None]:
        return await self._call(
            lambda: self.store.save_file(path, content), f"save-file {path!r}"
        )

    async def delete_file(self, path: str) -> Result[None]:
        return await self._call(
            lambda: self.store.delete_file(path), f"delete-file {path!r}"
        )

    async def delete_folder(self, path: str) -> Result[None]:
        return await self._call(
            lambda: self.store.delete_folder(path), f"delete-folder {path!r}"
        )

    async def rename_file(self, old_path: str, new_path: str) -> Result[None]:
        return await self._call(
            lambda: self.store.rename_file(old_path, new_path),
            f"rename-file {old_path!r} -> {new_path!r}",
        )


__all__ = [
    "Err",
    "GuardedFileStore",
    "Ok",
    "Result",
    "SyncErrorCategory",
    "SyncErrorClassifier",
    "SyncRetryPolicy",
    "call_file_store",
]
