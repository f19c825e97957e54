"""Balanced tag scanning used by the pattern-based markup rewrites."""

import re
from functools import lru_cache
from typing import Callable, Match, Optional, Pattern, Tuple


@lru_cache(maxsize=None)
def _tag_tokens(tag: str) -> Pattern:
    """Opening, closing and self-closing forms of ``tag``."""
    return re.compile(
        r'<(/?)' + re.escape(tag) + r'(?=[\s/>])[^>]*?(/?)>',
        re.IGNORECASE
    )


def find_closing_tag(text: str, tag: str, start: int) -> Optional[Tuple[int, int]]:
    """
    Locate the tag closing an element whose content begins at ``start``.

    Nested elements with the same name are skipped. Returns the
    ``(start, end)`` offsets of the closing tag, or None if it never closes.
    """
    depth = 1
    for token in _tag_tokens(tag).finditer(text, start):
        if token.group(1):
            depth -= 1
            if depth == 0:
                return token.start(), token.end()
        elif not token.group(2):
            depth += 1
    return None


def find_element(text: str, opening: Pattern, tag: str, start: int = 0) -> Optional[Tuple[Match, str, int]]:
    """Return ``(opening match, inner markup, end offset)`` of the first closed element."""
    match = opening.search(text, start)
    while match:
        if match.group(0).endswith('/>'):
            return match, '', match.end()
        closing = find_closing_tag(text, tag, match.end())
        if closing is not None:
            return match, text[match.end():closing[0]], closing[1]
        match = opening.search(text, match.end())
    return None


def replace_elements(
    text: str,
    opening: Pattern,
    tag: str,
    replace: Callable[[Match, str], Optional[str]]
) -> Tuple[str, int]:
    """
    Replace every element whose opening tag matches ``opening``.

    ``replace`` receives the opening-tag match and the element's inner markup
    and returns the replacement, or None to keep the element. Scanning then
    continues inside a kept element, so nested candidates are still visited.
    Elements that are never closed are left untouched.

    Returns:
        Tuple of (rewritten text, number of replaced elements)
    """
    parts = []
    count = 0
    pos = 0

    while True:
        match = opening.search(text, pos)
        if not match:
            break

        if match.group(0).endswith('/>'):
            inner, end = '', match.end()
        else:
            closing = find_closing_tag(text, tag, match.end())
            if closing is None:
                parts.append(text[pos:match.end()])
                pos = match.end()
                continue
            inner, end = text[match.end():closing[0]], closing[1]

        replacement = replace(match, inner)
        if replacement is None:
            parts.append(text[pos:match.end()])
            pos = match.end()
            continue

        parts.append(text[pos:match.start()])
        parts.append(replacement)
        count += 1
        pos = end

    parts.append(text[pos:])
    return ''.join(parts), count


__all__ = ['find_closing_tag', 'find_element', 'replace_elements']
