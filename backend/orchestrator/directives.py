"""
Action directive extraction.

Replies from the reasoning backend may embed one JSON object such as
{"action": "device_info", "type": "battery"} among ordinary prose.

Rules:
- Scanning is brace-counting, aware of JSON strings and escapes
- Nesting deeper than DIRECTIVE_MAX_DEPTH abandons that candidate
- The first balanced object that parses and has a non-empty string
  "action" field wins; trailing prose is tolerated
- Parameters are flattened to strings; nested objects and arrays are ignored
- Nothing here raises on malformed input
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

from spec import DIRECTIVE_MAX_DEPTH


_EMPTY_FENCE = re.compile(r"```[a-zA-Z]*\s*```")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")
_MULTI_NEWLINE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ActionDirective:
    """A device action requested by the backend."""
    type: str
    parameters: dict[str, str] = field(default_factory=dict)

    def param(self, name: str, default: str = "") -> str:
        return self.parameters.get(name, default)


@dataclass(frozen=True)
class ParsedDirective:
    """A directive plus the [start, end) span it occupied in the reply."""
    directive: ActionDirective
    start: int
    end: int


def _balanced_end(text: str, start: int, max_depth: int) -> int | None:
    """
    Return the index one past the '}' closing the object opened at `start`.

    None if the object is unbalanced or nests deeper than max_depth.
    """
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
            if depth > max_depth:
                return None
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _to_param(value: object) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def _as_directive(candidate: str) -> ActionDirective | None:
    try:
        obj = json.loads(candidate)
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None

    action = obj.get("action")
    if not isinstance(action, str) or not action.strip():
        return None

    params: dict[str, str] = {}
    for key, value in obj.items():
        if key == "action":
            continue
        converted = _to_param(value)
        if converted is not None:
            params[str(key)] = converted
    return ActionDirective(type=action.strip(), parameters=params)


def try_parse(text: str, max_depth: int = DIRECTIVE_MAX_DEPTH) -> ParsedDirective | None:
    """Find the first well-formed action directive in `text`."""
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start, max_depth)
        if end is not None:
            directive = _as_directive(text[start:end])
            if directive is not None:
                return ParsedDirective(directive=directive, start=start, end=end)
        start = text.find("{", start + 1)
    return None


def strip_directive(text: str, parsed: ParsedDirective) -> str:
    """
    Remove the directive's span from the reply.

    Other JSON-like prose is kept. Code fences left empty by the removal are
    dropped and leftover whitespace is collapsed.
    """
    remaining = text[:parsed.start] + text[parsed.end:]
    remaining = _EMPTY_FENCE.sub("", remaining)
    remaining = _MULTI_SPACE.sub(" ", remaining)
    remaining = _MULTI_NEWLINE.sub("\n\n", remaining)
    return remaining.strip()
