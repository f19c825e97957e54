"""Converters package for Confluence storage format to VuePress Markdown conversion."""

import logging

from .dialect_normalizer import DialectNormalizer, normalize_document
from .markdown_converter import MarkdownConverter
from .sanitizer import escape_regex, sanitize_filename, slugify
from .text_protection import TextProtector, protect_text

logger = logging.getLogger('confluence_vuepress_migrator.converters')


def convert_document(document, page_slug, attachments=None, logger=None):
    """
    Convenience function to convert one Confluence page body to Markdown.

    This runs the page-local pipeline:
    1. Dialect normalization (storage markup to canonical HTML)
    2. Markdown generation using markdownify, with attachment URL fixing
    3. Text protection (backtick-escaping of tag-shaped text)

    Internal links are left as ``CONFLUENCE_LINK:<slug>`` placeholders; they
    are resolved once every page has been written.

    Args:
        document: Page body in Confluence storage format
        page_slug: Slug of the page being converted
        attachments: Optional list of Attachment records for the page
        logger: Optional logger instance (uses module logger if not provided)

    Returns:
        str: Page Markdown

    Example:
        >>> from converters import convert_document
        >>> convert_document('<h1>Title</h1><p>Use &lt;div&gt; here</p>', 'my-page')
        '# Title\\n\\nUse `<div>` here'
    """
    if logger is None:
        logger = logging.getLogger('confluence_vuepress_migrator.converters')

    html = DialectNormalizer(logger).normalize(document, page_slug, attachments)
    markdown = MarkdownConverter(logger=logger).convert_standalone_html(html, attachments)
    return TextProtector(logger).protect(markdown)


__all__ = [
    'convert_document',
    'DialectNormalizer',
    'normalize_document',
    'MarkdownConverter',
    'TextProtector',
    'protect_text',
    'slugify',
    'sanitize_filename',
    'escape_regex'
]
