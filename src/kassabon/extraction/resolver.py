"""Generic first-match resolution over pattern lists."""

import functools
import logging
import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any, TypeVar

from kassabon.utils.parsing import UNKNOWN

logger = logging.getLogger(__name__)

T = TypeVar("T")


def iter_line_matches(pattern: re.Pattern[str], lines: Sequence[str]) -> Iterator[re.Match[str]]:
    """Yield every match of ``pattern``, line by line, in document order."""
    for line in lines:
        yield from pattern.finditer(line)


def first_match(patterns: Iterable[re.Pattern[str]], lines: Sequence[str]) -> re.Match[str] | None:
    """Return the first match of the first pattern (in list order) that matches."""
    for pattern in patterns:
        for match in iter_line_matches(pattern, lines):
            return match
    return None


def first_value(
    patterns: Iterable[re.Pattern[str]],
    lines: Sequence[str],
    convert: Callable[[str], T | None] = str.strip,
    group: str = "value",
) -> T | None:
    """Resolve a single field value.

    Patterns are tried in order; the first match whose captured group converts
    to something non-empty wins. A match that fails conversion (e.g. 31/02)
    does not stop the search.
    """
    for pattern in patterns:
        for match in iter_line_matches(pattern, lines):
            raw = match.group(group)
            if raw is None:
                continue
            value = convert(raw)
            if value is not None and value != "":
                return value
    return None


def matches_on_line(patterns: Iterable[re.Pattern[str]], line: str) -> list[re.Match[str]]:
    """All matches on ``line`` of the first pattern that matches it at all."""
    for pattern in patterns:
        found = list(pattern.finditer(line))
        if found:
            return found
    return []


def field_extractor(default: Any = UNKNOWN) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Isolate a field extractor: any error is logged and ``default`` returned.

    ``default`` may be a callable for mutable defaults (``dict``, ``list``).
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except Exception:
                logger.warning("Field extractor %s failed", func.__name__, exc_info=True)
                return default() if callable(default) else default

        return wrapper

    return decorator
