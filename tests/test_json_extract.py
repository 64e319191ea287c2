from __future__ import annotations

from storypulse.core.json_extract import (
    ExtractionStatus,
    extract_first_json_object,
    find_object_span,
    scan_json_object,
)


def test_prose_and_fences_around_object_are_ignored() -> None:
    text = 'Here you go:\n```json\n{"a": 1, "b": {"c": [1, 2]}}\n```\nThanks'
    assert extract_first_json_object(text) == {"a": 1, "b": {"c": [1, 2]}}


def test_only_the_first_object_is_returned() -> None:
    assert extract_first_json_object('{"first": true} {"second": true}') == {"first": True}


def test_missing_brace_returns_none() -> None:
    assert extract_first_json_object("no json here") is None
    assert scan_json_object("no json here").status is ExtractionStatus.NO_OBJECT


def test_empty_and_null_input_return_none() -> None:
    assert extract_first_json_object(None) is None
    assert extract_first_json_object("") is None
    assert scan_json_object(None).status is ExtractionStatus.EMPTY


def test_unbalanced_braces_return_none() -> None:
    result = scan_json_object('{"a": {"b": 1}')
    assert result.value is None
    assert result.status is ExtractionStatus.UNBALANCED


def test_balanced_but_invalid_json_returns_none() -> None:
    result = scan_json_object("{not json}")
    assert result.value is None
    assert result.status is ExtractionStatus.INVALID_JSON


def test_braces_inside_strings_do_not_affect_depth() -> None:
    text = 'x {"text": "a } tricky { value", "n": "\\"}"} y'
    assert extract_first_json_object(text) == {"text": "a } tricky { value", "n": '"}'}


def test_find_object_span_bounds() -> None:
    text = 'ab{"k": {}}cd'
    start, end = find_object_span(text)
    assert text[start:end] == '{"k": {}}'
    assert find_object_span("}{") is None


def test_lenient_scan_recovers_sloppy_json() -> None:
    sloppy = "Result: {'locations': [{'name': 'A',}], characters: []}"
    assert scan_json_object(sloppy).status is ExtractionStatus.INVALID_JSON

    result = scan_json_object(sloppy, lenient=True)
    assert result.ok
    assert result.value == {"locations": [{"name": "A"}], "characters": []}


def test_deeply_nested_object_is_invalid_not_an_error() -> None:
    text = "Sure! " + '{"a":' * 2000 + "1" + "}" * 2000
    assert extract_first_json_object(text) is None

    result = scan_json_object(text, lenient=True)
    assert result.value is None
    assert result.status is ExtractionStatus.INVALID_JSON
