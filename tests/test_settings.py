"""Tests for environment-driven configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from collectionsync.api import FileStoreApiSettings
from collectionsync.settings import SyncSettings


def test_sync_settings_defaults() -> None:
    settings = SyncSettings.from_env({})

    assert settings == SyncSettings()
    assert settings.project_dir_name == "collections"
    assert settings.sync_interval == 3.0
    assert settings.auto_sync is True
    assert settings.retry_policy().max_attempts == 1


def test_sync_settings_from_env() -> None:
    settings = SyncSettings.from_env(
        {
            "COLLECTIONSYNC_PROJECT_DIR_NAME": "  objects ",
            "COLLECTIONSYNC_SYNC_INTERVAL": "1.5",
            "COLLECTIONSYNC_AUTO_SYNC": "off",
            "COLLECTIONSYNC_INCLUDE_MODULES": "yes",
            "COLLECTIONSYNC_MAX_ATTEMPTS": "3",
            "COLLECTIONSYNC_OPERATION_TIMEOUT": "10",
        }
    )

    assert settings.project_dir_name == "objects"
    assert settings.sync_interval == 1.5
    assert settings.auto_sync is False
    assert settings.include_modules is True
    assert settings.max_attempts == 3
    assert settings.operation_timeout == 10.0
    assert settings.retry_policy().max_attempts == 3


def test_blank_values_fall_back_to_defaults() -> None:
    settings = SyncSettings.from_env(
        {"COLLECTIONSYNC_PROJECT_DIR_NAME": "   ", "COLLECTIONSYNC_SYNC_INTERVAL": ""}
    )

    assert settings.project_dir_name == "collections"
    assert settings.sync_interval == 3.0


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("COLLECTIONSYNC_SYNC_INTERVAL", "soon"),
        ("COLLECTIONSYNC_SYNC_INTERVAL", "-1"),
        ("COLLECTIONSYNC_AUTO_SYNC", "maybe"),
        ("COLLECTIONSYNC_MAX_ATTEMPTS", "0"),
        ("COLLECTIONSYNC_OPERATION_TIMEOUT", "never"),
    ],
)
def test_invalid_values_name_the_variable(name: str, value: str) -> None:
    with pytest.raises(ValueError, match=name):
        SyncSettings.from_env({name: value})


def test_sync_settings_validation() -> None:
    with pytest.raises(ValueError):
        SyncSettings(project_dir_name="a/b")
    with pytest.raises(ValueError):
        SyncSettings(sync_interval=0)


def test_api_settings_from_env(tmp_path: Path) -> None:
    settings = FileStoreApiSettings.from_env(
        {
            "COLLECTIONSYNC_PROJECTS_ROOT": str(tmp_path / "projects"),
            "COLLECTIONSYNC_MODULES_ROOT": " ",
        }
    )

    assert settings.projects_root == tmp_path / "projects"
    assert settings.modules_root is None
    assert FileStoreApiSettings.from_env({}).projects_root == Path("projects")
