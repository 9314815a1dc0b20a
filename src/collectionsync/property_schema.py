"""Declarations of the record fields that are stored in their own files."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

DESCRIPTOR_EXTENSION = "json"
DATA_FOLDER = "data"


def _validate_text(value: str, *, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string, got {type(value)!r}")

    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field_name} must be a non-empty string")

    return stripped


@dataclass(frozen=True)
class PropertyConfig:
    """Declares that a long-text field is externalized to its own file.

    ``extension`` may be compound (``"test.js"``). ``folder`` overrides the
    subdirectory the file lives in and defaults to the extension.
    """

    property_name: str
    extension: str
    folder: str | None = None

    def __post_init__(self) -> None:
        property_name = _validate_text(self.property_name, field_name="property_name")
        extension = _validate_text(self.extension, field_name="extension").lstrip(".")
        if not extension:
            raise ValueError("extension must contain more than dots")
        if extension == DESCRIPTOR_EXTENSION:
            raise ValueError("extension 'json' is reserved for descriptors")

        folder = self.folder
        if folder is not None:
            folder = _validate_text(folder, field_name="folder")
            if "/" in folder:
                raise ValueError("folder must be a single path segment")

        object.__setattr__(self, "property_name", property_name)
        object.__setattr__(self, "extension", extension)
        object.__setattr__(self, "folder", folder)

    @property
    def directory(self) -> str:
        """Return the subdirectory holding files for this property."""

        return self.folder or self.extension

    @property
    def suffix(self) -> str:
        return f".{self.extension}"

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "PropertyConfig":
        """Build a config from ``{propertyName, extension|ext, folder?}``."""

        name = payload.get("propertyName", payload.get("property_name"))
        extension = payload.get("extension", payload.get("ext"))
        folder = payload.get("folder")
        if name is None or extension is None:
            raise ValueError("property config requires 'propertyName' and 'extension'")
        return cls(
            property_name=str(name),
            extension=str(extension),
            folder=str(folder) if folder is not None else None,
        )


DEFAULT_PROPERTY_CONFIGS: tuple[PropertyConfig, ...] = (
    PropertyConfig("script", "js"),
    PropertyConfig("html", "html"),
    PropertyConfig("css", "css"),
    PropertyConfig("testScript", "test.js", folder="tests"),
)


class PropertySchema:
    """Ordered set of :class:`PropertyConfig` entries.

    The first configuration is the *default role*: its companion path is
    recorded as ``filePath`` while every other role uses ``<role>FilePath``.
    """

    def __init__(self, configs: Iterable[PropertyConfig] | None = None) -> None:
        resolved = tuple(DEFAULT_PROPERTY_CONFIGS if configs is None else configs)
        if not resolved:
            raise ValueError("at least one property config is required")

        names: set[str] = set()
        for config in resolved:
            if not isinstance(config, PropertyConfig):
                raise TypeError(
                    f"configs must be PropertyConfig instances, got {type(config)!r}"
                )
            if config.property_name in names:
                raise ValueError(f"duplicate property '{config.property_name}'")
            names.add(config.property_name)

        self._configs = resolved
        # Longest suffix first so "goblin.test.js" never resolves as ".js".
        self._by_suffix = sorted(
            resolved, key=lambda config: len(config.extension), reverse=True
        )

    def __iter__(self) -> Iterator[PropertyConfig]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    @property
    def configs(self) -> Sequence[PropertyConfig]:
        return self._configs

    @property
    def default_role(self) -> str:
        return self._configs[0].property_name

    def directories(self) -> set[str]:
        """Return the subdirectory names recognized as property folders."""

        return {config.directory for config in self._configs}

    def for_property(self, property_name: str) -> PropertyConfig | None:
        for config in self._configs:
            if config.property_name == property_name:
                return config
        return None

    def for_filename(self, filename: str) -> PropertyConfig | None:
        """Return the config whose (possibly compound) extension ends ``filename``."""

        for config in self._by_suffix:
            if filename.endswith(config.suffix) and len(filename) > len(config.suffix):
                return config
        return None

    def strip_extension(self, filename: str) -> str:
        """Return ``filename`` without its extension, compound suffixes as a unit."""

        config = self.for_filename(filename)
        if config is not None:
            return filename[: -len(config.suffix)]

        dot = filename.rfind(".")
        if dot <= 0:
            return filename
        return filename[:dot]

    def file_path_field(self, property_name: str) -> str:
        """Return the bookkeeping field that records a companion's path."""

        if property_name == self.default_role:
            return "filePath"
        return f"{property_name}FilePath"

    def special_fields(self, record: dict[str, object]) -> list[PropertyConfig]:
        """Return configs whose property holds text on ``record``."""

        return [
            config
            for config in self._configs
            if isinstance(record.get(config.property_name), str)
        ]

    def has_special_properties(self, record: dict[str, object]) -> bool:
        return any(
            isinstance(record.get(config.property_name), str) for config in self._configs
        )


__all__ = [
    "DATA_FOLDER",
    "DEFAULT_PROPERTY_CONFIGS",
    "DESCRIPTOR_EXTENSION",
    "PropertyConfig",
    "PropertySchema",
]
