"""
backend/tests/test_oracle_parser.py

Purpose:
    Best-effort JSON recovery from oracle completion text.

Dependencies:
    - matchpick.services.oracle_parser
"""

from __future__ import annotations

from matchpick.services.oracle_parser import is_raw_result, parse_oracle_text


def test_plain_json():
    assert parse_oracle_text('{"over_under": {"probability": 0.6}}') == {"over_under": {"probability": 0.6}}


def test_fenced_json():
    text = '```json\n{"handicap": {"recommended_side": "HOME_-0_5"}}\n```'
    assert parse_oracle_text(text) == {"handicap": {"recommended_side": "HOME_-0_5"}}


def test_prose_around_the_object():
    text = 'Here is my analysis:\n{"full_time_1x2": {"recommended_side": "AWAY"}}\nGood luck!'
    assert parse_oracle_text(text) == {"full_time_1x2": {"recommended_side": "AWAY"}}


def test_braces_inside_strings_do_not_break_extraction():
    text = 'Result: {"summary": "form {good} vs }bad{", "probability": 0.5} trailing {junk'
    assert parse_oracle_text(text) == {"summary": "form {good} vs }bad{", "probability": 0.5}


def test_first_object_wins_when_several_are_present():
    text = '{"a": 1} and later {"b": 2}'
    assert parse_oracle_text(text) == {"a": 1}


def test_empty_text_gives_empty_dict():
    assert parse_oracle_text("") == {}
    assert parse_oracle_text("   ") == {}
    assert parse_oracle_text(None) == {}


def test_garbage_is_kept_as_raw_text():
    text = "I cannot analyse this match."
    parsed = parse_oracle_text(text)

    assert parsed == {"raw_text": text}
    assert is_raw_result(parsed)


def test_non_object_json_is_raw():
    assert is_raw_result(parse_oracle_text("[1, 2, 3]"))


def test_is_raw_result_shape():
    assert not is_raw_result({"over_under": {}})
    assert not is_raw_result(None)
    assert not is_raw_result({"raw_text": 42})
