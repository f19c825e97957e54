"""
Backtick-escaping of tag-shaped text in generated Markdown.

VuePress compiles every page as a Vue template, so text such as ``<div>`` or
``<ValueType>`` left in prose is read as a component and breaks the build.
Fenced code, inline code and literal HTML tables are set aside first and put
back unchanged at the end.
"""

import logging
import re
from typing import Dict, List, Tuple

from .tag_scanner import find_closing_tag

logger = logging.getLogger('confluence_vuepress_migrator.converters.protection')

RISKY_IDENTIFIER_SUFFIXES = (
    'Reference', 'Type', 'Entity', 'Value', 'Field', 'Collection', 'Model',
    'Rule', 'Filter', 'Event', 'Command', 'Parameter', 'Binding', 'Element',
    'Container', 'Unit', 'AIU', 'AUI', 'CUI', 'IU',
)

ESCAPED_TAG_NAMES = (
    'div', 'span', 'form', 'input', 'button', 'select', 'textarea', 'label',
    'table', 'tr', 'td', 'th', 'thead', 'tbody', 'ul', 'ol', 'li', 'dl', 'dt',
    'dd', 'p', 'a', 'img', 'hr', 'br', 'header', 'footer', 'section', 'aside',
    'nav', 'article', 'main', 'figure', 'figcaption',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
)

MAX_ESCAPE_PASSES = 3

_FENCED_CODE = re.compile(
    r'^[ \t]*(`{3,}|~{3,})[^\n]*\n[\s\S]*?(?:^[ \t]*\1[ \t]*$|\Z)',
    re.MULTILINE
)
_INLINE_CODE = re.compile(r'(?<!`)(`+)(?!`)[^\n]+?(?<!`)\1(?!`)')
_TABLE_OPEN = re.compile(r'<table(?=[\s>])[^>]*>', re.IGNORECASE)

_RISKY_IDENTIFIER = re.compile(
    r'(?<!`)<((?:[A-Z][a-zA-Z]*?)?(?:' + '|'.join(RISKY_IDENTIFIER_SUFFIXES) + r'))>(?!`)'
)
_PLAIN_TAG = re.compile(
    r'(?<!`)</?(?:' + '|'.join(ESCAPED_TAG_NAMES) + r')(?:\s[^>]*)?>(?!`)',
    re.IGNORECASE
)
# Two wrapped tags written back to back would merge into a double-backtick run
_ADJACENT_WRAPS = re.compile(r'(?<=>)``(?=</?[A-Za-z])')


class _Placeholders:
    """Side table of extracted regions, local to one protection run."""

    def __init__(self, kind: str):
        self.kind = kind
        self.items: List[Tuple[str, str]] = []

    def stash(self, original: str) -> str:
        token = f'\x00{self.kind}{len(self.items)}\x00'
        self.items.append((token, original))
        return token

    def restore(self, text: str) -> str:
        for token, original in self.items:
            text = text.replace(token, original, 1)
        return text

    def __len__(self) -> int:
        return len(self.items)


class TextProtector:
    """Escapes tag-shaped text in Markdown while leaving code and HTML tables alone."""

    def __init__(self, logger: logging.Logger = None):
        """Initialize protector with optional logger."""
        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.converters.protection')
        self.last_stats: Dict[str, int] = {}

    def protect(self, markdown: str) -> str:
        """
        Wrap risky identifiers and plain HTML tags in backticks.

        Args:
            markdown: Page Markdown

        Returns:
            Markdown safe to compile as a Vue template. Running it again on
            its own output changes nothing.
        """
        if not markdown:
            self.last_stats = {}
            return markdown or ''

        code_blocks = _Placeholders('CODEBLOCK')
        tables = _Placeholders('HTMLTABLE')
        inline_code = _Placeholders('INLINECODE')

        text = _FENCED_CODE.sub(lambda m: code_blocks.stash(m.group(0)), markdown)
        text = self._extract_tables(text, tables)
        text = _INLINE_CODE.sub(lambda m: inline_code.stash(m.group(0)), text)

        text, identifiers = _RISKY_IDENTIFIER.subn(lambda m: f'`{m.group(0)}`', text)

        tags = 0
        for _ in range(MAX_ESCAPE_PASSES):
            text, count = _PLAIN_TAG.subn(lambda m: f'`{m.group(0)}`', text)
            if not count:
                break
            tags += count
        text = _ADJACENT_WRAPS.sub('` `', text)

        text = inline_code.restore(text)
        text = tables.restore(text)
        text = code_blocks.restore(text)

        self.last_stats = {
            'code_blocks': len(code_blocks),
            'html_tables': len(tables),
            'identifiers_escaped': identifiers,
            'tags_escaped': tags,
        }
        if identifiers or tags:
            self.logger.debug(f"Escaped {identifiers} identifiers and {tags} tags in text")
        return text

    @staticmethod
    def _extract_tables(text: str, tables: _Placeholders) -> str:
        """Replace each top-level ``<table>`` element, nested tables included, with a token."""
        parts = []
        pos = 0
        while True:
            match = _TABLE_OPEN.search(text, pos)
            if not match:
                break
            closing = find_closing_tag(text, 'table', match.end())
            if closing is None:
                # Unclosed opener, e.g. a table tag mentioned in prose
                parts.append(text[pos:match.end()])
                pos = match.end()
                continue
            parts.append(text[pos:match.start()])
            parts.append(tables.stash(text[match.start():closing[1]]))
            pos = closing[1]
        parts.append(text[pos:])
        return ''.join(parts)


def protect_text(markdown: str) -> str:
    """Escape tag-shaped text with a throwaway protector."""
    return TextProtector().protect(markdown)


__all__ = [
    'TextProtector',
    'protect_text',
    'RISKY_IDENTIFIER_SUFFIXES',
    'ESCAPED_TAG_NAMES',
    'MAX_ESCAPE_PASSES'
]
