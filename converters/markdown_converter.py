"""HTML to Markdown conversion for normalized Confluence pages."""

import logging
import re
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup
from markdownify import MarkdownConverter as MarkdownifyConverter

from models import Attachment

from .sanitizer import escape_regex

logger = logging.getLogger('confluence_vuepress_migrator.converters.markdownconverter')

# Cell content that cannot be expressed in a pipe table
BLOCK_CELL_TAGS = ['ul', 'ol', 'pre', 'table', 'blockquote', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6']

_URL_CHARS = r'[^\s)"\']'


class MarkdownConverter(MarkdownifyConverter):
    """
    Converts canonical HTML into VuePress-flavoured Markdown.

    Extends markdownify.MarkdownConverter with:
    - Fenced code blocks that keep the language hint and the raw code text
    - GFM pipe tables for simple tables, literal HTML for everything else
    - Strikethrough for del/s/strike
    - Rewriting of legacy attachment download URLs to local paths
    """

    def __init__(self, logger: logging.Logger = None, config: Dict[str, Any] = None, **kwargs):
        """Initialize markdown converter with logger and configuration."""
        self.config = config or {}

        markdownify_options = {
            'heading_style': 'ATX',  # Use # for headings
            'bullets': '-',  # Use - for unordered lists
            'escape_asterisks': False,
            'escape_underscores': False,
        }
        markdownify_options.update(self.config.get('markdownify', {}))
        markdownify_options.update(kwargs)

        super().__init__(**markdownify_options)

        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.converters.markdownconverter')
        self.last_stats: Dict[str, int] = {}

    def convert_standalone_html(self, html: str, attachments: Optional[Iterable[Attachment]] = None) -> str:
        """
        Convert a normalized page body to Markdown.

        Args:
            html: Canonical HTML produced by the dialect normalizer
            attachments: Attachments of the page, for download URL rewriting

        Returns:
            Markdown text (empty for empty input)
        """
        if not html or not html.strip():
            return ''

        self.last_stats = {'code_blocks': 0, 'markdown_tables': 0, 'html_tables': 0, 'attachment_urls': 0}

        soup = self._parse_html(html)
        markdown = self.convert_soup(soup)
        markdown = self._rewrite_attachment_urls(markdown, attachments or [])
        markdown = self._final_cleanup(markdown)

        self.logger.debug(f"Converted HTML to markdown: {self.last_stats}")
        return markdown

    def _parse_html(self, html: str) -> BeautifulSoup:
        """Parse HTML content with BeautifulSoup."""
        return BeautifulSoup(html, 'lxml')

    def _rewrite_attachment_urls(self, markdown: str, attachments: Iterable[Attachment]) -> str:
        """Point legacy ``/wiki/download/...`` links at the downloaded copies."""
        for attachment in attachments:
            if not attachment.original_name:
                continue
            names = {attachment.original_name, quote(attachment.original_name)}
            for name in names:
                pattern = re.compile(
                    r'(?:https?://' + _URL_CHARS + r'*?)?/wiki/download/' + _URL_CHARS + r'*?/'
                    + escape_regex(name) + r'(?:\?' + _URL_CHARS + r'*)?(?=[\s)"\']|$)'
                )
                markdown, count = pattern.subn(lambda m: attachment.local_path, markdown)
                self.last_stats['attachment_urls'] = self.last_stats.get('attachment_urls', 0) + count
        return markdown

    def _final_cleanup(self, markdown: str) -> str:
        """Final cleanup pass - remove excessive blank lines."""
        markdown = re.sub(r'\n[ \t]+\n', '\n\n', markdown)
        markdown = re.sub(r'\n{3,}', '\n\n', markdown)
        return markdown.strip()

    def _count(self, key: str) -> None:
        self.last_stats[key] = self.last_stats.get(key, 0) + 1

    # Element handlers

    def convert_pre(self, el, text, parent_tags=None, **kwargs):
        """Handle pre elements as fenced code blocks."""
        return self._fenced_code(el.get_text(), self._extract_code_language(el))

    def convert_div(self, el, text, parent_tags=None, **kwargs):
        """Handle div elements, with special handling for legacy code divs."""
        classes = el.get('class', [])

        if 'code' in classes:
            pre_elem = el.find('pre')
            if pre_elem:
                return self._fenced_code(pre_elem.get_text(), self._extract_code_language(pre_elem))
            return self._fenced_code(el.get_text(), self._extract_code_language(el))

        # Regular div - return text content
        return '\n\n' + text.strip() + '\n\n' if text.strip() else ''

    def convert_table(self, el, text, parent_tags=None, **kwargs):
        """Emit a pipe table when the table allows it, literal HTML otherwise."""
        if self._has_heading_row(el) and not el.find(BLOCK_CELL_TAGS):
            self._count('markdown_tables')
            return super().convert_table(el, text, parent_tags=parent_tags, **kwargs)

        self._count('html_tables')
        return '\n\n' + str(el) + '\n\n'

    def convert_br(self, el, text, parent_tags=None, **kwargs):
        """Keep line breaks inside table cells as HTML."""
        if parent_tags and ('td' in parent_tags or 'th' in parent_tags):
            return '<br/>'
        return super().convert_br(el, text, parent_tags=parent_tags, **kwargs)

    def convert_del(self, el, text, parent_tags=None, **kwargs):
        """Handle strikethrough."""
        if not text.strip():
            return text
        return f'~~{text.strip()}~~'

    convert_s = convert_del
    convert_strike = convert_del

    def convert_img(self, el, text, parent_tags=None, **kwargs):
        """Handle images."""
        src = el.get('src', '')
        alt = el.get('alt', '')
        title = el.get('title', '')

        # Use title as alt if alt is missing
        if not alt and title:
            alt = title

        return f'![{alt}]({src})'

    # Helpers

    def _fenced_code(self, code: str, language: str) -> str:
        self._count('code_blocks')
        code = code.strip('\n')

        # The fence must be longer than any backtick run inside the code
        longest = max((len(run) for run in re.findall(r'`+', code)), default=0)
        fence = '`' * max(3, longest + 1)

        return f'\n\n{fence}{language}\n{code}\n{fence}\n\n'

    def _extract_code_language(self, element) -> str:
        """Extract programming language from a pre (or legacy code div) element."""
        lang = element.get('data-language')
        if lang:
            return lang.strip()

        candidates = [element]
        code_el = element.find('code')
        if code_el:
            candidates.insert(0, code_el)

        for candidate in candidates:
            for cls in candidate.get('class', []):
                if str(cls).startswith('language-'):
                    return str(cls)[len('language-'):]

        return ''

    @staticmethod
    def _has_heading_row(table) -> bool:
        """A table has a heading row when it has a thead or its first row is all th."""
        if table.find('thead'):
            return True
        first_row = table.find('tr')
        if not first_row:
            return False
        cells = first_row.find_all(['td', 'th'], recursive=False)
        return bool(cells) and all(cell.name == 'th' for cell in cells)


__all__ = ['MarkdownConverter', 'BLOCK_CELL_TAGS']
