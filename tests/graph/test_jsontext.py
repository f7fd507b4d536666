"""Unit tests for the stack-based JSON reader and writer."""

import json

import pytest

from depforest.graph import jsontext

NESTING_DEPTH = 5000

SAMPLE_DOCUMENTS = [
    {"dataKey": "A", "data": None, "finished": False, "dependencies": [None]},
    [{"a": [1, 2.5, -3e2]}, {}, [], "café \"quoted\"", True],
    {"nested": {"empty": {}, "list": [[], [None]]}},
    "scalar",
    [],
]


class TestDumps:
    """Test serialization against the json module."""

    @pytest.mark.parametrize("document", SAMPLE_DOCUMENTS)
    def test_compact_matches_json(self, document):
        """Test compact output is identical to json.dumps with compact separators."""
        assert jsontext.dumps(document) == json.dumps(document, separators=(",", ":"))

    @pytest.mark.parametrize("indent", [0, 2, 4])
    def test_indented_matches_json(self, indent):
        """Test indented output is identical to json.dumps."""
        document = SAMPLE_DOCUMENTS[1]

        assert jsontext.dumps(document, indent=indent) == json.dumps(document, indent=indent)

    def test_deep_nesting(self):
        """Test that nesting depth is not bounded by the recursion limit."""
        document: list = []
        for _ in range(NESTING_DEPTH):
            document = [document]

        text = jsontext.dumps(document)

        assert text == "[" * NESTING_DEPTH + "[]" + "]" * NESTING_DEPTH


class TestLoads:
    """Test parsing against the json module."""

    @pytest.mark.parametrize("document", SAMPLE_DOCUMENTS)
    def test_matches_json(self, document):
        """Test that parsing json.dumps output restores the document."""
        assert jsontext.loads(json.dumps(document, indent=2)) == document

    def test_whitespace_around_tokens(self):
        """Test that insignificant whitespace is accepted everywhere."""
        assert jsontext.loads(' \n{ "a" : [ 1 , null ] }\t') == {"a": [1, None]}

    def test_deep_nesting(self):
        """Test that deeply nested text parses."""
        text = '{"k":' * NESTING_DEPTH + "0" + "}" * NESTING_DEPTH

        value = jsontext.loads(text)

        for _ in range(NESTING_DEPTH):
            value = value["k"]
        assert value == 0

    @pytest.mark.parametrize(
        "text",
        ["", "{not json", '{"a" 1}', "[1 2]", "[1,]", '{"a":1} x', "[", "tru"],
    )
    def test_invalid_text(self, text):
        """Test that malformed text raises JSONDecodeError."""
        with pytest.raises(json.JSONDecodeError):
            jsontext.loads(text)
