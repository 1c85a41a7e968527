"""Parsing of the JSON object a model returns.

Models wrap JSON in markdown fences, add prose around it, emit control
characters or stop mid-object when they run out of tokens. The parsing
chain is: direct parse, fenced block, first balanced ``{...}`` region, and
finally a repair of a truncated region.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```\s*(.*?)```", re.DOTALL)
_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1F\x7F-\x9F]")

_CLOSERS = {"{": "}", "[": "]"}


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def find_json_region(text: str) -> tuple[str, bool] | None:
    """Locate the first ``{...}`` region.

    Returns:
        ``(region, complete)``; ``complete`` is False when the text ends
        before the outermost object is closed. None if there is no ``{``.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[start : index + 1], True
    return text[start:], False


def repair_truncated_json(fragment: str) -> dict[str, Any] | None:
    """Close a truncated JSON object.

    First tries closing every open string and container where the text
    stops. Then cuts back to each comma outside a string, last one first,
    dropping the incomplete member and closing the containers open there.
    """
    stack: list[str] = []
    cuts: list[tuple[int, list[str]]] = []
    in_string = False
    escaped = False
    for index, char in enumerate(fragment):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in "}]" and stack:
            stack.pop()
        elif char == ",":
            cuts.append((index, list(stack)))

    closing = "".join(reversed(stack))
    as_is = fragment.rstrip()
    if in_string:
        as_is += '"'
    repaired = _loads_object(as_is + closing)
    if repaired is not None:
        return repaired

    for index, snapshot in reversed(cuts):
        repaired = _loads_object(fragment[:index] + "".join(reversed(snapshot)))
        if repaired is not None:
            return repaired
    return None


def parse_model_json(response: str) -> dict[str, Any] | None:
    """Parse a model response into a JSON object, or None if nothing works."""
    if not response or not response.strip():
        return None

    parsed = _loads_object(response.strip())
    if parsed is not None:
        return parsed

    for fence in (_JSON_FENCE, _ANY_FENCE):
        match = fence.search(response)
        if match:
            parsed = _loads_object(match.group(1).strip())
            if parsed is not None:
                logger.debug("Parsed JSON from fenced block")
                return parsed

    found = find_json_region(_CONTROL_CHARACTERS.sub("", response))
    if found is None:
        logger.debug("No JSON object in model response")
        return None

    region, complete = found
    if complete:
        parsed = _loads_object(region)
        if parsed is not None:
            return parsed

    parsed = repair_truncated_json(region)
    if parsed is not None:
        logger.debug("Repaired truncated JSON (%d characters)", len(region))
    return parsed
