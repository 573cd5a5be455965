"""Tests for attempt message encoding and the fallback parse."""

from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from solspace.engine.message import (
    MESSAGE_FORMAT,
    MESSAGE_VERSION,
    decode_attempt_message,
    encode_attempt_message,
)
from tests.strategies import attempt_metadata


class TestEncode:

    def test_tagged_payload(self) -> None:
        payload = json.loads(encode_attempt_message("first try", {"score": 1}))
        assert payload == {
            "format": MESSAGE_FORMAT,
            "version": MESSAGE_VERSION,
            "description": "first try",
            "metadata": {"score": 1},
        }

    def test_none_metadata_is_empty(self) -> None:
        assert json.loads(encode_attempt_message("x"))["metadata"] == {}

    def test_unserializable_metadata_raises(self) -> None:
        with pytest.raises(TypeError):
            encode_attempt_message("x", {"obj": object()})


class TestDecode:

    def test_tagged(self) -> None:
        message = encode_attempt_message("memoized", {"complexity": "O(n)"})
        assert decode_attempt_message(message) == ("memoized", {"complexity": "O(n)"})

    def test_untagged_json_accepted(self) -> None:
        message = json.dumps({"description": "old style", "metadata": {"a": 1}})
        assert decode_attempt_message(message) == ("old style", {"a": 1})

    def test_plain_text_falls_back(self) -> None:
        assert decode_attempt_message("Initial snapshot\n") == ("Initial snapshot", {})

    def test_json_without_description_falls_back(self) -> None:
        assert decode_attempt_message('{"metadata": {}}') == ('{"metadata": {}}', {})

    def test_json_array_falls_back(self) -> None:
        assert decode_attempt_message("[1, 2]") == ("[1, 2]", {})

    def test_foreign_format_falls_back(self) -> None:
        message = json.dumps({"format": "other/tool", "description": "x", "metadata": {}})
        description, metadata = decode_attempt_message(message)
        assert description == message
        assert metadata == {}

    def test_non_dict_metadata_becomes_empty(self) -> None:
        message = json.dumps({"description": "x", "metadata": [1, 2]})
        assert decode_attempt_message(message) == ("x", {})

    def test_non_string_description_is_dumped(self) -> None:
        message = json.dumps({"description": {"k": 1}})
        assert decode_attempt_message(message) == ('{"k": 1}', {})

    @given(st.text(max_size=200), attempt_metadata)
    def test_encoded_messages_decode_exactly(self, description: str, metadata: dict) -> None:
        message = encode_attempt_message(description, metadata)
        assert decode_attempt_message(message) == (description, metadata)
