"""Tests for merging descriptor and companion files into records."""

from __future__ import annotations

import json

import pytest

from collectionsync.errors import DescriptorParseError, FileStoreError
from collectionsync.materializer import (
    ObjectMaterializer,
    extract_static_lists,
    parse_descriptor,
)
from collectionsync.paths import PathCodec
from collectionsync.property_schema import PropertySchema
from collectionsync.records import FileGroup
from collectionsync.state import SpecialPropertyIndex

DESCRIPTOR = "proj/collections/Scripts/entities/data/goblin.json"
SCRIPT = "proj/collections/Scripts/entities/js/goblin.js"


@pytest.fixture()
def special_index(schema: PropertySchema) -> SpecialPropertyIndex:
    return SpecialPropertyIndex(lambda type_id: [], schema.has_special_properties)


@pytest.fixture()
def materializer(
    schema: PropertySchema, special_index: SpecialPropertyIndex
) -> ObjectMaterializer:
    return ObjectMaterializer(schema, special_index)


def _group(codec: PathCodec, *paths: str) -> FileGroup:
    return FileGroup.from_decoded(codec.decode(path) for path in paths)


def test_materializes_goblin_example(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    group = _group(codec, DESCRIPTOR, SCRIPT)
    contents = {DESCRIPTOR: json.dumps({"id": "goblin"}), SCRIPT: "class Goblin {}"}

    result = materializer.materialize(group, contents)

    assert result.collection_id == "entities"
    assert result.object_id == "goblin"
    assert result.has_special_properties
    assert result.record == {
        "id": "goblin",
        "script": "class Goblin {}",
        "fileName": "goblin",
        "filePath": SCRIPT,
    }


def test_descriptor_id_overrides_filename(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    group = _group(codec, DESCRIPTOR)
    contents = {DESCRIPTOR: json.dumps({"id": "orc", "hp": 7})}

    assert materializer.canonical_id(group, contents) == "orc"
    result = materializer.materialize(group, contents)

    assert result.object_id == "orc"
    assert result.record["hp"] == 7


def test_existing_fields_survive_merge(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    group = _group(codec, SCRIPT)
    existing = {"id": "goblin", "hp": 5, "notes": "memory only"}

    result = materializer.materialize(
        group, {SCRIPT: "let x = 1;"}, existing, object_id="goblin"
    )

    assert result.record["notes"] == "memory only"
    assert result.record["hp"] == 5
    assert result.record["script"] == "let x = 1;"
    assert existing == {"id": "goblin", "hp": 5, "notes": "memory only"}


def test_companion_only_group_gets_an_id(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    result = materializer.materialize(_group(codec, SCRIPT), {SCRIPT: "x"})

    assert result.record["id"] == "goblin"


def test_flat_descriptor_has_no_file_name(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    path = "proj/collections/Bestiary/monsters/wolf.json"
    result = materializer.materialize(
        _group(codec, path), {path: json.dumps({"id": "wolf", "hp": 3})}
    )

    assert result.record == {"id": "wolf", "hp": 3}
    assert not result.has_special_properties


def test_marks_special_index_when_companions_found(
    codec: PathCodec,
    materializer: ObjectMaterializer,
    special_index: SpecialPropertyIndex,
) -> None:
    materializer.materialize(_group(codec, SCRIPT), {SCRIPT: "x"})

    assert special_index.as_dict() == {"entities": True}


def test_missing_descriptor_content_raises(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    with pytest.raises(FileStoreError):
        materializer.materialize(_group(codec, DESCRIPTOR), {})


def test_parse_descriptor_rejects_non_objects() -> None:
    with pytest.raises(DescriptorParseError):
        parse_descriptor(DESCRIPTOR, "{not json")
    with pytest.raises(DescriptorParseError):
        parse_descriptor(DESCRIPTOR, "[1, 2]")

    assert parse_descriptor(DESCRIPTOR, '{"id": "goblin"}') == {"id": "goblin"}


def test_extract_static_lists_from_script(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    source = """
    class Goblin {
      static services = ['combat', "loot"];
      static serviceDependencies = [`audio`];
    }
    """

    assert extract_static_lists(source) == {
        "services": ["combat", "loot"],
        "serviceDependencies": ["audio"],
    }

    result = materializer.materialize(_group(codec, SCRIPT), {SCRIPT: source})
    assert result.record["services"] == ["combat", "loot"]
    assert result.record["serviceDependencies"] == ["audio"]


def test_extract_static_lists_ignores_plain_scripts() -> None:
    assert extract_static_lists("const services = ['x'];") == {}


def test_static_lists_only_come_from_script_files(
    codec: PathCodec, materializer: ObjectMaterializer
) -> None:
    existing = {"id": "goblin", "script": "class G { static services = ['combat']; }"}

    result = materializer.materialize(
        _group(codec, DESCRIPTOR),
        {DESCRIPTOR: json.dumps({"id": "goblin", "hp": 4})},
        existing,
    )

    assert "services" not in result.record
    assert result.record["hp"] == 4
