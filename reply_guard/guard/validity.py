"""Reply validity check: does the text carry a non-empty content tag pair."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Iterable

DEFAULT_CONTENT_TAGS: tuple[str, ...] = ("正文", "game")


@lru_cache(maxsize=32)
def _tag_pattern(tag: str) -> re.Pattern[str]:
    name = re.escape(tag)
    return re.compile(rf"<{name}>(.*?)</{name}>", re.DOTALL)


def has_valid_content(text: Any, tags: Iterable[str] = DEFAULT_CONTENT_TAGS) -> bool:
    """
    Return True when `text` holds at least one tag pair with non-blank inner text.

    Pairs are matched non-greedily so each open/close pair is judged on its own.
    Unmatched tags never count and non-string input is never valid.
    """
    if not isinstance(text, str):
        return False

    for tag in tags:
        if not tag:
            continue
        for match in _tag_pattern(tag).finditer(text):
            if match.group(1).strip():
                return True
    return False


def make_validator(tags: Iterable[str] | None = None):
    """Bind a tag list into a single-argument validator."""
    resolved = tuple(tag for tag in (tags or DEFAULT_CONTENT_TAGS) if tag)
    if not resolved:
        resolved = DEFAULT_CONTENT_TAGS

    def _validator(text: Any) -> bool:
        return has_valid_content(text, resolved)

    return _validator
