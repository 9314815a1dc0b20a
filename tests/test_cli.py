"""Smoke tests for the command-line interface."""

from __future__ import annotations

import json
from io import StringIO
from pathlib import Path

import pytest

from collectionsync.cli import main


def _write_tree(root: Path) -> None:
    entities = root / "proj" / "collections" / "Scripts" / "entities"
    (entities / "data").mkdir(parents=True)
    (entities / "js").mkdir()
    (entities / "data" / "goblin.json").write_text('{"id": "goblin"}', encoding="utf-8")
    (entities / "js" / "goblin.js").write_text("class Goblin {}", encoding="utf-8")


def test_import_prints_collections(tmp_path: Path) -> None:
    _write_tree(tmp_path)
    output = StringIO()

    exit_code = main(["import", "--root", str(tmp_path), "--project", "proj"], output=output)

    assert exit_code == 0
    snapshot = json.loads(output.getvalue())
    goblin = snapshot["entities"]["goblin"]
    assert goblin["script"] == "class Goblin {}"
    assert goblin["fileName"] == "goblin"
    assert "Scripts" in snapshot["objectTypeCategories"]
    assert snapshot["objectTypeDefinitions"]["entities"]["category"] == "Scripts"


def test_push_writes_tree_that_imports_back(tmp_path: Path) -> None:
    dump = tmp_path / "dump.json"
    dump.write_text(
        json.dumps(
            {
                "objectTypeDefinitions": {"monsters": {"category": "Bestiary"}},
                "monsters": {"wolf": {"id": "wolf", "hp": 3, "script": "howl()"}},
            }
        ),
        encoding="utf-8",
    )
    root = tmp_path / "projects"
    output = StringIO()

    exit_code = main(
        ["push", "--root", str(root), "--project", "proj", "--input", str(dump)],
        output=output,
    )

    assert exit_code == 0
    assert output.getvalue().strip() == "Wrote 2 objects (0 failed) to proj/collections"
    monsters = root / "proj" / "collections" / "Bestiary" / "monsters"
    assert (monsters / "js" / "wolf.js").read_text(encoding="utf-8") == "howl()"
    assert json.loads((monsters / "data" / "wolf.json").read_text(encoding="utf-8")) == {
        "id": "wolf",
        "hp": 3,
        "fileName": "wolf",
    }

    reimport = StringIO()
    assert main(["import", "--root", str(root), "--project", "proj"], output=reimport) == 0
    assert json.loads(reimport.getvalue())["monsters"]["wolf"]["script"] == "howl()"


def test_push_rejects_invalid_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    dump = tmp_path / "dump.json"
    dump.write_text("{not json", encoding="utf-8")

    exit_code = main(
        ["push", "--root", str(tmp_path), "--project", "proj", "--input", str(dump)],
        output=StringIO(),
    )

    assert exit_code == 1
    assert "is not valid JSON" in capsys.readouterr().err


def test_push_reports_missing_input(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(
        [
            "push",
            "--root",
            str(tmp_path),
            "--project",
            "proj",
            "--input",
            str(tmp_path / "missing.json"),
        ],
        output=StringIO(),
    )

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("error:")


def test_import_uses_custom_project_dir(tmp_path: Path) -> None:
    entities = tmp_path / "proj" / "data-root" / "Actors" / "heroes"
    entities.mkdir(parents=True)
    (entities / "hero.json").write_text('{"id": "hero", "level": 2}', encoding="utf-8")
    output = StringIO()

    exit_code = main(
        [
            "import",
            "--root",
            str(tmp_path),
            "--project",
            "proj",
            "--project-dir-name",
            "data-root",
        ],
        output=output,
    )

    assert exit_code == 0
    assert json.loads(output.getvalue())["heroes"] == {"hero": {"id": "hero", "level": 2}}
