import json

import pytest

from plant_identifier.errors import NoRecoverableJson
from plant_identifier.services.repair import ParseSuccess, repair_json, repair_text, strip_code_fences


def test_valid_json_parses_directly_without_loss():
    record = {
        "commonName": "Monstera",
        "scientificName": "Monstera deliciosa",
        "careRequirements": {"watering": "Weekly", "sunlight": "Bright indirect"},
        "interestingFacts": ["a", "b", "c"],
        "imageCount": 7,
    }
    outcome = repair_json(json.dumps(record, indent=2))

    assert isinstance(outcome, ParseSuccess)
    assert outcome.strategy == "direct"
    assert outcome.record == record


def test_markdown_fence_after_prose():
    text = 'Here is the plant: ```json\n{"commonName":"Aloe"}\n```'
    outcome = repair_json(text)

    assert outcome.strategy == "code_fence"
    assert outcome.record == {"commonName": "Aloe"}


def test_outer_braces_strip_surrounding_prose():
    text = 'Sure! {"commonName": "Fern", "family": "Polypodiaceae"} Hope this helps.'
    outcome = repair_json(text)

    assert outcome.strategy == "outer_braces"
    assert outcome.record["family"] == "Polypodiaceae"


def test_single_quotes_bare_keys_and_trailing_comma():
    outcome = repair_json("{commonName: 'Aloe', scientificName: 'Aloe vera',}")

    assert outcome.strategy == "textual_repair"
    assert outcome.record == {"commonName": "Aloe", "scientificName": "Aloe vera"}


def test_repair_leaves_string_contents_alone():
    text = '{"commonName": "Aloe", "warnings": ["Toxic to cats, dogs", "note: keep dry"],}'
    outcome = repair_json(text)

    assert outcome.record["warnings"] == ["Toxic to cats, dogs", "note: keep dry"]


def test_apostrophe_inside_single_quoted_value():
    outcome = repair_json("{commonName: 'Devil's Ivy', family: 'Araceae'}")
    assert outcome.record == {"commonName": "Devil's Ivy", "family": "Araceae"}


def test_python_literals_are_converted():
    outcome = repair_json("{'commonName': 'Aloe', 'edible': True, 'note': None}")
    assert outcome.record == {"commonName": "Aloe", "edible": True, "note": None}


def test_smart_quotes_are_normalized():
    outcome = repair_json("{“commonName”: “Rose”}")
    assert outcome.record == {"commonName": "Rose"}


def test_truncated_output_is_closed():
    text = '{"commonName": "Monstera", "interestingFacts": ["Fact one", "Fact tw'
    outcome = repair_json(text)

    assert outcome.strategy == "textual_repair"
    assert outcome.record == {"commonName": "Monstera", "interestingFacts": ["Fact one", "Fact tw"]}


def test_truncated_after_key_drops_dangling_key():
    outcome = repair_json('```json\n{"commonName": "Basil", "family": ')
    assert outcome.record == {"commonName": "Basil"}


def test_sequential_objects_pick_the_first():
    outcome = repair_json('{"commonName": "Aloe"} {"commonName": "Rose"}')

    assert outcome.strategy == "inner_object"
    assert outcome.record == {"commonName": "Aloe"}


def test_inner_object_isolated_from_broken_wrapper():
    outcome = repair_json('Result: {"plant": {"commonName": "Fern"}, oops}')

    assert outcome.strategy == "inner_object"
    assert outcome.record == {"commonName": "Fern"}


def test_array_yields_first_object():
    outcome = repair_json('[{"commonName": "Aloe"}, {"commonName": "Agave"}]')

    assert outcome.strategy == "direct"
    assert outcome.record == {"commonName": "Aloe"}


@pytest.mark.parametrize("text", ["", "   ", "I could not identify this plant.", None, '"just a string"'])
def test_unrecoverable_text_raises(text):
    with pytest.raises(NoRecoverableJson) as excinfo:
        repair_json(text)
    assert len(excinfo.value.reasons) == 5


def test_strip_code_fences_without_closing_fence():
    assert strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'


def test_repair_text_quotes_keys_only_after_delimiters():
    assert repair_text("{a: 'x', b: [1, 2,], c: {d: false}}") == '{"a": "x", "b": [1, 2], "c": {"d": false}}'
