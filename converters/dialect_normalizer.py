"""Rewrites Confluence storage-format markup into canonical HTML."""

import html
import logging
import re
from typing import Dict, Iterable, List, Match, Optional

from models import LINK_PLACEHOLDER_SCHEME, Attachment

from .sanitizer import sanitize_filename, slugify
from .tag_scanner import find_element, replace_elements

logger = logging.getLogger('confluence_vuepress_migrator.converters.normalizer')

# Panel labels; editor panels with any other type use the raw type string
PANEL_LABELS = {
    'info': 'INFO',
    'note': 'NOTE',
    'warning': 'WARNING',
    'tip': 'TIP',
}

RULE_NAMES = (
    'blob_images',
    'decorations',
    'panels',
    'image_macros',
    'code_macros',
    'residual_macros',
    'tables',
    'links',
    'loadable_wrappers',
)

_I = re.IGNORECASE

# Blob images
_BLOB_IMAGE = re.compile(r'<img\b[^>]*?\bdata-fileid="([^"]*)"[^>]*>', _I)
_ALT_ATTR = re.compile(r'\balt="([^"]*)"', _I)

# Decorations
_SVG_OPEN = re.compile(r'<svg(?=[\s/>])[^>]*>', _I)
_VISUALLY_HIDDEN_OPEN = re.compile(r'<span\b[^>]*\bdata-testid="visually-hidden"[^>]*>', _I)
_ANCHOR_BUTTON_OPEN = re.compile(r'<button\b[^>]*\bdata-testid="anchor-button"[^>]*>', _I)
_HEADING_ANCHOR_OPEN = re.compile(
    r'<span\b[^>]*\bclass="[^"]*\bheading-anchor-wrapper\b[^"]*"[^>]*>', _I
)

# Macros
_MACRO_TAG = 'ac:structured-macro'
_PANEL_MACRO_OPEN = re.compile(
    r'<ac:structured-macro\b[^>]*\bac:name="(info|note|warning|tip)"[^>]*>', _I
)
_CODE_MACRO_OPEN = re.compile(r'<ac:structured-macro\b[^>]*\bac:name="code"[^>]*>', _I)
_RICH_TEXT_BODY_OPEN = re.compile(r'<ac:rich-text-body\b[^>]*>', _I)
_LANGUAGE_PARAM = re.compile(
    r'<ac:parameter\b[^>]*\bac:name="language"[^>]*>([^<]*)</ac:parameter>', _I
)
_CDATA_BODY = re.compile(
    r'<ac:plain-text-body\b[^>]*>\s*<!\[CDATA\[([\s\S]*?)\]\]>\s*</ac:plain-text-body>', _I
)
_PLAIN_BODY = re.compile(r'<ac:plain-text-body\b[^>]*>([\s\S]*?)</ac:plain-text-body>', _I)
_SPLIT_CDATA = ']]]]><![CDATA[>'
_SELF_CLOSING_MACRO = re.compile(r'<ac:structured-macro\b[^>]*/>', _I)
_INNERMOST_MACRO = re.compile(
    r'<ac:structured-macro\b[^>]*>((?:(?!<ac:structured-macro\b)[\s\S])*?)</ac:structured-macro>', _I
)
_PARAMETER = re.compile(
    r'<ac:parameter\b[^>]*/>|<ac:parameter\b[^>]*>[\s\S]*?</ac:parameter>', _I
)
_IMG_TAG = re.compile(r'<img\b[^>]*>', _I)

# Editor panels
_EDITOR_PANEL_OPEN = re.compile(
    r'<div\b(?=[^>]*\bclass="[^"]*\bak-editor-panel\b[^"]*")'
    r'(?=[^>]*\bdata-panel-type="([^"]*)")[^>]*>',
    _I
)
_EDITOR_PANEL_CONTENT_OPEN = re.compile(
    r'<div\b[^>]*\bclass="[^"]*\bak-editor-panel__content\b[^"]*"[^>]*>', _I
)

# Image macros
_IMAGE_MACRO_OPEN = re.compile(r'<ac:image\b[^>]*>', _I)
_ATTACHMENT_FILENAME = re.compile(r'<ri:attachment\b[^>]*?\bri:filename="([^"]*)"', _I)
_URL_VALUE = re.compile(r'<ri:url\b[^>]*?\bri:value="([^"]*)"', _I)

# Tables
_COLGROUP = re.compile(r'<colgroup\b[^>]*/>|<colgroup\b[^>]*>[\s\S]*?</colgroup>', _I)
_TABLE_PART_ATTRS = re.compile(r'<(table|thead|tbody|tfoot|tr|th|td)\s[^>]*>', _I)
_CELL_OPEN = {
    'td': re.compile(r'<td>', _I),
    'th': re.compile(r'<th>', _I),
}
_PARAGRAPH_BREAK = re.compile(r'</p>\s*<p\b[^>]*>', _I)
_SINGLE_PARAGRAPH = re.compile(r'^\s*<p\b[^>]*>([\s\S]*)</p>\s*$', _I)
_PARAGRAPH_TAG = re.compile(r'</?p\b', _I)
_LEADING_HEADER_ROWS = re.compile(
    r'<table>\s*<tbody>'
    r'((?:\s*<tr>\s*(?:<th>(?:(?!</?t[rdh]>|<table\b)[\s\S])*?</th>\s*)+</tr>)+)',
    _I
)

# Links
_LINK_OPEN = re.compile(r'<ac:link\b[^>]*>', _I)
_PAGE_TITLE = re.compile(r'<ri:page\b[^>]*?\bri:content-title="([^"]*)"', _I)
_LINK_BODY = re.compile(r'<ac:link-body\b[^>]*>([\s\S]*?)</ac:link-body>', _I)
_PLAIN_LINK_BODY = re.compile(
    r'<ac:plain-text-link-body\b[^>]*>\s*<!\[CDATA\[([\s\S]*?)\]\]>\s*</ac:plain-text-link-body>', _I
)

# Loadable wrappers
_LOADABLE_OPEN = re.compile(r'<span\b[^>]*\bdata-loadable-vc-wrapper\b[^>]*>', _I)


class DialectNormalizer:
    """
    Converts Confluence storage markup into plain HTML a generic converter understands.

    Rules run in a fixed order and each one is a whole-document rewrite.
    Markup no rule recognises passes through unchanged, so ``normalize``
    never fails on malformed input.
    """

    def __init__(self, logger: logging.Logger = None):
        """Initialize normalizer with optional logger."""
        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.converters.normalizer')
        self.last_stats: Dict[str, int] = {}

    def normalize(
        self,
        document: str,
        page_slug: str,
        attachments: Optional[Iterable[Attachment]] = None
    ) -> str:
        """
        Normalize one page body.

        Args:
            document: Storage-format page body
            page_slug: Slug of the page, used for attachment paths
            attachments: Attachments already downloaded for this page

        Returns:
            Canonical HTML
        """
        if not document:
            self.last_stats = {name: 0 for name in RULE_NAMES}
            return document or ''

        by_file_id = {
            a.file_id: a for a in (attachments or []) if a.file_id
        }

        stats = {}
        result = document
        result, stats['blob_images'] = self._resolve_blob_images(result, by_file_id)
        result, stats['decorations'] = self._strip_decorations(result)
        result, stats['panels'] = self._convert_panels(result)
        result, stats['image_macros'] = self._convert_image_macros(result, page_slug)
        result, stats['code_macros'] = self._convert_code_macros(result)
        result, stats['residual_macros'] = self._remove_residual_macros(result)
        result, stats['tables'] = self._clean_tables(result)
        result, stats['links'] = self._convert_links(result)
        result, stats['loadable_wrappers'] = self._unwrap_loadable(result)

        self.last_stats = stats
        applied = {name: count for name, count in stats.items() if count}
        self.logger.debug(f"Normalized page '{page_slug}': {applied or 'no rules applied'}")
        return result

    # Rule 1

    def _resolve_blob_images(self, document: str, by_file_id: Dict[str, Attachment]):
        if not by_file_id:
            return document, 0

        count = 0

        def replace(match: Match) -> str:
            nonlocal count
            attachment = by_file_id.get(match.group(1))
            if attachment is None:
                return match.group(0)
            alt_match = _ALT_ATTR.search(match.group(0))
            alt = alt_match.group(1) if alt_match else attachment.sanitized_name
            count += 1
            return f'<img src="{attachment.local_path}" alt="{alt}" />'

        return _BLOB_IMAGE.sub(replace, document), count

    # Rule 2

    def _strip_decorations(self, document: str):
        total = 0
        # Innermost decorations first so the wrappers close where expected
        for opening, tag in (
            (_SVG_OPEN, 'svg'),
            (_VISUALLY_HIDDEN_OPEN, 'span'),
            (_ANCHOR_BUTTON_OPEN, 'button'),
            (_HEADING_ANCHOR_OPEN, 'span'),
        ):
            document, count = replace_elements(document, opening, tag, lambda m, inner: '')
            total += count
        return document, total

    # Rule 3

    def _convert_panels(self, document: str):
        total = 0

        def macro_panel(match: Match, inner: str) -> Optional[str]:
            body = find_element(inner, _RICH_TEXT_BODY_OPEN, 'ac:rich-text-body')
            if body is None:
                return None
            label = PANEL_LABELS[match.group(1).lower()]
            content, _ = self._convert_panels(body[1])
            return self._panel(label, content)

        def editor_panel(match: Match, inner: str) -> Optional[str]:
            content = find_element(inner, _EDITOR_PANEL_CONTENT_OPEN, 'div')
            if content is None:
                return None
            panel_type = match.group(1)
            label = PANEL_LABELS.get(panel_type.lower(), panel_type)
            body, _ = self._convert_panels(content[1])
            return self._panel(label, body)

        document, count = replace_elements(document, _PANEL_MACRO_OPEN, _MACRO_TAG, macro_panel)
        total += count
        document, count = replace_elements(document, _EDITOR_PANEL_OPEN, 'div', editor_panel)
        total += count
        return document, total

    @staticmethod
    def _panel(label: str, body: str) -> str:
        return f'<blockquote>**{label}:** {body.strip()}</blockquote>'

    # Rule 4

    def _convert_image_macros(self, document: str, page_slug: str):
        def replace(match: Match, inner: str) -> Optional[str]:
            attachment = _ATTACHMENT_FILENAME.search(inner)
            if attachment:
                name = sanitize_filename(html.unescape(attachment.group(1)))
                return f'<img src="./attachments/{page_slug}/{name}" alt="{name}" />'
            url = _URL_VALUE.search(inner)
            if url:
                return f'<img src="{url.group(1)}" alt="external-image" />'
            return None

        return replace_elements(document, _IMAGE_MACRO_OPEN, 'ac:image', replace)

    # Rule 5

    def _convert_code_macros(self, document: str):
        def with_language(match: Match, inner: str) -> Optional[str]:
            language = _LANGUAGE_PARAM.search(inner)
            if not language:
                return None
            return self._code_block(inner, language.group(1).strip())

        def without_language(match: Match, inner: str) -> Optional[str]:
            return self._code_block(inner, '')

        document, first = replace_elements(document, _CODE_MACRO_OPEN, _MACRO_TAG, with_language)
        document, second = replace_elements(document, _CODE_MACRO_OPEN, _MACRO_TAG, without_language)
        return document, first + second

    @staticmethod
    def _code_block(inner: str, language: str) -> Optional[str]:
        cdata = _CDATA_BODY.search(inner)
        if cdata:
            body = cdata.group(1).replace(_SPLIT_CDATA, ']]>')
        else:
            plain = _PLAIN_BODY.search(inner)
            if not plain:
                return None
            body = html.unescape(plain.group(1))
        body = html.escape(body.replace('\t', '\n'), quote=False)
        return f'<pre><code class="language-{language}">{body}</code></pre>'

    # Rule 6

    def _remove_residual_macros(self, document: str):
        document, total = _SELF_CLOSING_MACRO.subn('', document)

        def keep_images(match: Match) -> str:
            return ''.join(_IMG_TAG.findall(match.group(1)))

        while True:
            document, count = _INNERMOST_MACRO.subn(keep_images, document)
            if not count:
                break
            total += count

        document, count = _PARAMETER.subn('', document)
        return document, total + count

    # Rule 7

    def _clean_tables(self, document: str):
        if '<table' not in document.lower():
            return document, 0

        document, total = _COLGROUP.subn('', document)
        document, count = _TABLE_PART_ATTRS.subn(lambda m: f'<{m.group(1).lower()}>', document)
        total += count
        document, count = self._clean_cells(document)
        total += count

        def relocate(match: Match) -> str:
            return f'<table><thead>{match.group(1).strip()}</thead><tbody>'

        document, count = _LEADING_HEADER_ROWS.subn(relocate, document)
        return document, total + count

    def _clean_cells(self, document: str):
        total = 0

        for tag, opening in _CELL_OPEN.items():
            def clean(match: Match, inner: str, tag=tag) -> str:
                content, _ = self._clean_cells(inner)
                content = _PARAGRAPH_BREAK.sub('<br/>', content)
                single = _SINGLE_PARAGRAPH.match(content)
                if single and not _PARAGRAPH_TAG.search(single.group(1)):
                    content = single.group(1)
                return f'<{tag}>{content}</{tag}>'

            document, count = replace_elements(document, opening, tag, clean)
            total += count

        return document, total

    # Rule 8

    def _convert_links(self, document: str):
        def replace(match: Match, inner: str) -> Optional[str]:
            page = _PAGE_TITLE.search(inner)
            if not page:
                return None
            title = page.group(1)
            href = f'{LINK_PLACEHOLDER_SCHEME}:{slugify(html.unescape(title))}'

            body = _LINK_BODY.search(inner)
            if body:
                text = body.group(1)
            else:
                plain = _PLAIN_LINK_BODY.search(inner)
                text = html.escape(plain.group(1), quote=False) if plain else title
            return f'<a href="{href}">{text}</a>'

        return replace_elements(document, _LINK_OPEN, 'ac:link', replace)

    # Rule 9

    def _unwrap_loadable(self, document: str):
        total = 0

        def unwrap(match: Match, inner: str) -> str:
            nonlocal total
            content, count = replace_elements(inner, _LOADABLE_OPEN, 'span', unwrap)
            total += count
            return content

        document, count = replace_elements(document, _LOADABLE_OPEN, 'span', unwrap)
        return document, count + total


def normalize_document(
    document: str,
    page_slug: str,
    attachments: Optional[List[Attachment]] = None
) -> str:
    """Normalize a page body with a throwaway normalizer."""
    return DialectNormalizer().normalize(document, page_slug, attachments)


__all__ = ['DialectNormalizer', 'normalize_document', 'PANEL_LABELS', 'RULE_NAMES']
