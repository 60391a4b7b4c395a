"""Tests for JSON extraction from LLM replies."""

from __future__ import annotations

from bookmark_organizer.core.json_utils import extract_json


class TestExtractJson:
    def test_plain_object(self) -> None:
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_block(self) -> None:
        text = 'Here you go:\n```json\n{"suggestions": [{"i": 1, "f": "Tech"}]}\n```\nThanks!'
        assert extract_json(text) == {"suggestions": [{"i": 1, "f": "Tech"}]}

    def test_unlabelled_fence(self) -> None:
        assert extract_json('```\n[1, 2]\n```') == [1, 2]

    def test_prose_around_object(self) -> None:
        text = 'Sure! {"suggestions": []} Let me know if you need more.'
        assert extract_json(text) == {"suggestions": []}

    def test_trailing_commas_are_repaired(self) -> None:
        assert extract_json('{"a": [1, 2,],}') == {"a": [1, 2]}

    def test_bare_array(self) -> None:
        assert extract_json('result: [{"i": 1}]') == [{"i": 1}]

    def test_scalars_are_rejected(self) -> None:
        assert extract_json("42") is None
        assert extract_json('"text"') is None

    def test_garbage_returns_none(self) -> None:
        assert extract_json("no json here") is None
        assert extract_json("") is None
        assert extract_json(None) is None
