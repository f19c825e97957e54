"""Link rewriter resolving internal page links once every page has been exported."""

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Union

from models import LINK_PLACEHOLDER_SCHEME, PageIndex, PageNode

logger = logging.getLogger('confluence_vuepress_migrator.exporters.link_rewriter')

MAX_CHARS_BETWEEN_BRACKETS = 1000  # Prevent catastrophic backtracking

# Absolute Confluence page URLs that carry the page id
LEGACY_PAGE_URL_PATTERNS = [
    re.compile(r'/pages/viewpage\.action\?pageId=(\d+)'),
    re.compile(r'/spaces/[^/]+/pages/(\d+)(?:/[^/?#]*)?'),
    re.compile(r'/display/[^/]+/(\d+)'),
]


def relative_path(source_path: str, target_path: str) -> str:
    """
    Path from one page directory to another.

    Both paths are relative to the output root, so climbing back to the root
    takes one ``../`` per segment of the source path.

    Args:
        source_path: Path of the linking page (e.g. ``root/guide/``)
        target_path: Path of the linked page (e.g. ``root/api/``)

    Returns:
        Relative link target, ``./`` when both are the output root
    """
    depth = len([segment for segment in source_path.split('/') if segment])
    return ('../' * depth + target_path) or './'


class LinkRewriter:
    """
    Rewrites placeholder and legacy Confluence links to relative paths.

    This rewriter:
    1. Finds ``[text](CONFLUENCE_LINK:slug)`` links and placeholder anchors
    2. Looks the slug up in the completed page index
    3. Replaces known targets with a path relative to the linking page
    4. Demotes unknown targets to their plain text
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the link rewriter.

        Args:
            logger: Logger instance
        """
        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.exporters.link_rewriter')

        prefix = re.escape(LINK_PLACEHOLDER_SCHEME) + ':'
        # Link text may hold one level of image, e.g. [![alt](src)](target)
        link_text = (
            r'\[((?:!\[[^\]]*\]\([^)]*\)|[^\]]){0,' + str(MAX_CHARS_BETWEEN_BRACKETS) + r'})\]'
        )
        self.placeholder_pattern = re.compile(
            link_text + r'\(' + prefix + r'([^)\s]*)\)'
        )
        self.placeholder_anchor_pattern = re.compile(
            r'<a href="' + prefix + r'([^"]*)">([\s\S]*?)</a>'
        )
        self.link_pattern = re.compile(
            r'(?<!!)' + link_text + r'\(([^)\s]*)\)'
        )

        self.last_stats = {'resolved': 0, 'demoted': 0, 'legacy': 0}

    def resolve_links(self, markdown: str, source_path: str, index: PageIndex) -> str:
        """
        Resolve the internal links of one page.

        Args:
            markdown: Page Markdown containing placeholder links
            source_path: Path of the page the Markdown belongs to
            index: Completed page index

        Returns:
            Markdown with every placeholder resolved or demoted to text
        """
        stats = {'resolved': 0, 'demoted': 0, 'legacy': 0}
        self.last_stats = stats
        if not markdown:
            return markdown or ''

        def target_for(slug: str) -> Optional[PageNode]:
            node = index.find_by_slug(slug)
            if node is None:
                stats['demoted'] += 1
                self.logger.debug(f"No page for link target '{slug}' in '{source_path}', keeping text only")
                return None
            stats['resolved'] += 1
            return node

        def replace_placeholder(match):
            text, slug = match.group(1), match.group(2)
            node = target_for(slug)
            if node is None:
                return text
            return f'[{text}]({relative_path(source_path, node.path)})'

        def replace_anchor(match):
            slug, text = match.group(1), match.group(2)
            node = target_for(slug)
            if node is None:
                return text
            return f'<a href="{relative_path(source_path, node.path)}">{text}</a>'

        def replace_legacy(match):
            text, url = match.group(1), match.group(2)
            node = self._find_legacy_target(url, index)
            if node is None:
                return match.group(0)
            stats['legacy'] += 1
            return f'[{text}]({relative_path(source_path, node.path)})'

        result = self.placeholder_pattern.sub(replace_placeholder, markdown)
        result = self.placeholder_anchor_pattern.sub(replace_anchor, result)
        result = self.link_pattern.sub(replace_legacy, result)
        return result

    def _find_legacy_target(self, url: str, index: PageIndex) -> Optional[PageNode]:
        """Find the exported page an absolute Confluence URL points to."""
        if not url or url.startswith(LINK_PLACEHOLDER_SCHEME):
            return None
        for pattern in LEGACY_PAGE_URL_PATTERNS:
            match = pattern.search(url)
            if match:
                return index.get(match.group(1))
        return None

    def rewrite_files(self, output_dir: Union[str, Path], index: PageIndex) -> Dict[str, int]:
        """
        Resolve links in every exported page of the index.

        Files are only written back when their content changed.

        Args:
            output_dir: Root of the exported site
            index: Completed page index

        Returns:
            Statistics dictionary
        """
        output_dir = Path(output_dir)
        totals = {
            'files_scanned': 0,
            'files_changed': 0,
            'links_resolved': 0,
            'links_demoted': 0,
            'legacy_links_resolved': 0
        }

        for node in index.pages.values():
            file_path = output_dir / node.path / 'README.md'
            if not file_path.is_file():
                self.logger.warning(f"Exported page not found: {file_path}")
                continue

            totals['files_scanned'] += 1
            original = file_path.read_text(encoding='utf-8')
            rewritten = self.resolve_links(original, node.path, index)

            totals['links_resolved'] += self.last_stats['resolved']
            totals['links_demoted'] += self.last_stats['demoted']
            totals['legacy_links_resolved'] += self.last_stats['legacy']

            if rewritten != original:
                file_path.write_text(rewritten, encoding='utf-8')
                totals['files_changed'] += 1

        self.logger.info(
            f"Resolved {totals['links_resolved']} internal links "
            f"({totals['links_demoted']} demoted to text) in {totals['files_changed']} files"
        )
        return totals


__all__ = ['LinkRewriter', 'relative_path', 'LEGACY_PAGE_URL_PATTERNS']
