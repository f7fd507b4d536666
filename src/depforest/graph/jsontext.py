"""Stack-based JSON reading and writing for deeply nested trees.

A dependency chain nests two JSON containers per node, so a long chain
quickly exceeds the interpreter recursion limit that the C accelerated json
encoder and scanner are bound by. These helpers walk containers with an
explicit stack and leave scalars to the json module, so the text they produce
and accept is the same as json.dumps / json.loads.
"""

import json
import re
from json.decoder import scanstring
from typing import Any

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_NUMBER = re.compile(r"(-?(?:0|[1-9]\d*))(\.\d+)?([eE][-+]?\d+)?")
_LITERALS = {"true": True, "false": False, "null": None}
_END = object()


def dumps(document: Any, indent: int | None = None) -> str:
    """Serialize dicts, lists and scalars without recursion.

    Args:
        document: The value to serialize
        indent: Indentation per level; compact separators when None

    Returns:
        JSON text matching json.dumps with the same settings
    """
    key_separator = ":" if indent is None else ": "
    parts: list[str] = []
    # Frames: [entries iterator, closing bracket, depth, first entry pending]
    stack: list[list[Any]] = []

    def newline(depth: int) -> str:
        return "" if indent is None else "\n" + " " * (indent * depth)

    def open_value(value: Any, depth: int) -> None:
        if isinstance(value, dict):
            if not value:
                parts.append("{}")
                return
            parts.append("{")
            stack.append([iter(value.items()), "}", depth + 1, True])
        elif isinstance(value, list):
            if not value:
                parts.append("[]")
                return
            parts.append("[")
            stack.append([((None, item) for item in value), "]", depth + 1, True])
        else:
            parts.append(json.dumps(value))

    open_value(document, 0)

    while stack:
        frame = stack[-1]
        entries, closer, depth, first = frame
        entry = next(entries, _END)
        if entry is _END:
            stack.pop()
            parts.append(newline(depth - 1) + closer)
            continue

        if not first:
            parts.append(",")
        frame[3] = False
        parts.append(newline(depth))

        key, value = entry
        if key is not None:
            parts.append(json.dumps(key) + key_separator)
        open_value(value, depth)

    return "".join(parts)


def loads(text: str) -> Any:
    """Parse JSON text without recursion.

    Raises:
        json.JSONDecodeError: If the text is not a single valid JSON value
    """
    pos = _skip(text, 0)
    # Frames: (container, pending key for objects)
    stack: list[tuple[dict | list, str | None]] = []

    while True:
        char = text[pos : pos + 1]

        if char == "{":
            pos = _skip(text, pos + 1)
            if text[pos : pos + 1] == "}":
                value: Any = {}
                pos += 1
            else:
                key, pos = _read_key(text, pos)
                stack.append(({}, key))
                continue
        elif char == "[":
            pos = _skip(text, pos + 1)
            if text[pos : pos + 1] == "]":
                value = []
                pos += 1
            else:
                stack.append(([], None))
                continue
        else:
            value, pos = _read_scalar(text, pos)

        # Attach the finished value, closing every container it completes
        while True:
            if not stack:
                end = _skip(text, pos)
                if end != len(text):
                    msg = "Extra data"
                    raise json.JSONDecodeError(msg, text, end)
                return value

            container, key = stack[-1]
            if isinstance(container, dict):
                container[key] = value
            else:
                container.append(value)

            pos = _skip(text, pos)
            char = text[pos : pos + 1]
            if char == ",":
                pos = _skip(text, pos + 1)
                if isinstance(container, dict):
                    key, pos = _read_key(text, pos)
                    stack[-1] = (container, key)
                break

            closer = "}" if isinstance(container, dict) else "]"
            if char != closer:
                msg = "Expecting ',' delimiter"
                raise json.JSONDecodeError(msg, text, pos)
            pos += 1
            stack.pop()
            value = container


def _skip(text: str, pos: int) -> int:
    return _WHITESPACE.match(text, pos).end()


def _read_key(text: str, pos: int) -> tuple[str, int]:
    if text[pos : pos + 1] != '"':
        msg = "Expecting property name enclosed in double quotes"
        raise json.JSONDecodeError(msg, text, pos)
    key, pos = scanstring(text, pos + 1)
    pos = _skip(text, pos)
    if text[pos : pos + 1] != ":":
        msg = "Expecting ':' delimiter"
        raise json.JSONDecodeError(msg, text, pos)
    return key, _skip(text, pos + 1)


def _read_scalar(text: str, pos: int) -> tuple[Any, int]:
    if text[pos : pos + 1] == '"':
        return scanstring(text, pos + 1)

    for literal, value in _LITERALS.items():
        if text.startswith(literal, pos):
            return value, pos + len(literal)

    match = _NUMBER.match(text, pos)
    if match is None:
        msg = "Expecting value"
        raise json.JSONDecodeError(msg, text, pos)

    integer, fraction, exponent = match.groups()
    if fraction or exponent:
        return float(integer + (fraction or "") + (exponent or "")), match.end()
    return int(integer), match.end()
