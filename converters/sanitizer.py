"""Filename and slug sanitizing helpers shared by the converters and exporters."""

import re

_NON_SLUG_CHARS = re.compile(r'[^a-z0-9]+')
_EDGE_DASHES = re.compile(r'^-+|-+$')

# Characters invalid on Windows filesystems
_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE_RUN = re.compile(r'\s+')


def slugify(text: str) -> str:
    """
    Turn a page title into a URL-safe slug.

    Every run of characters outside ``[a-z0-9]`` (after lowercasing) becomes a
    single dash, so non-ASCII letters are dropped rather than transliterated.
    Link placeholders and page directories both rely on this exact behaviour.

    Args:
        text: Page title or any other string

    Returns:
        Slug such as ``aui-model-v2-0``, or an empty string
    """
    if not text:
        return ''
    slug = _NON_SLUG_CHARS.sub('-', text.lower())
    return _EDGE_DASHES.sub('', slug)


def sanitize_filename(name: str) -> str:
    """
    Make an attachment filename safe for every target filesystem.

    Invalid characters are replaced first and whitespace runs collapsed
    afterwards, which keeps the function idempotent.
    """
    if not name:
        return ''
    safe = _INVALID_FILENAME_CHARS.sub('_', name)
    return _WHITESPACE_RUN.sub('_', safe)


def escape_regex(text: str) -> str:
    """Escape regex metacharacters so ``text`` matches literally."""
    return re.escape(text)


__all__ = ['slugify', 'sanitize_filename', 'escape_regex']
