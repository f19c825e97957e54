"""Markdown exporter walking a Confluence page tree into VuePress pages."""

import logging
import posixpath
import re
from pathlib import Path
from typing import Any, Dict, Optional

from converters import convert_document
from converters.sanitizer import slugify
from logger import ProgressTracker
from models import MigrationResult, MigrationStatus, PageIndex, PageNode

from .attachment_manager import AttachmentManager
from .link_rewriter import LinkRewriter

PAGE_FILENAME = 'README.md'

# Titles containing any of these need quoting in YAML frontmatter
_YAML_SPECIAL_CHARS = re.compile(r'[:\[\]{}&*#?|\-<>=!%@`\'"]')


def yaml_scalar(value: str) -> str:
    """Render a frontmatter value, double-quoted when YAML would misread it."""
    if not _YAML_SPECIAL_CHARS.search(value) and value == value.strip():
        return value
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def render_page(title: str, markdown: str) -> str:
    """Full README.md content: frontmatter, title heading and body."""
    content = f"---\ntitle: {yaml_scalar(title)}\n---\n\n# {title}\n\n{markdown}"
    return content.rstrip('\n') + '\n'


class MarkdownExporter:
    """
    Exports a Confluence page tree to a VuePress docs directory.

    This exporter:
    1. Walks the tree from the root page, parents before children
    2. Downloads attachments and converts each page body to Markdown
    3. Writes ``<path>/README.md`` with frontmatter for every page
    4. Builds the page index and resolves internal links in all pages
    """

    def __init__(
        self,
        confluence_client,
        config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
        output_dir: Optional[str] = None
    ):
        """
        Initialize the markdown exporter.

        Args:
            confluence_client: ConfluenceClient instance
            config: Configuration dictionary with export settings
            logger: Logger instance
            output_dir: Optional output directory override (takes precedence over config)
        """
        self.client = confluence_client
        self.config = config or {}
        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.exporters.markdown_exporter')

        export_config = self.config.get('export', {})
        self.output_directory = Path(output_dir or export_config.get('output_directory') or './docs')

        # Initialize helper components
        self.attachment_manager = AttachmentManager(self.client, self.config, logger=self.logger)
        self.link_rewriter = LinkRewriter(logger=self.logger)

        self.nodes: Dict[str, PageNode] = {}
        self.statuses = []
        self.index: Optional[PageIndex] = None

    def export(self, root_page_id: str) -> MigrationResult:
        """
        Export the tree below ``root_page_id`` and resolve internal links.

        Pages that fail are logged and counted; their subtrees are skipped.

        Args:
            root_page_id: Confluence ID of the root page

        Returns:
            MigrationResult with page and link counts

        Raises:
            requests.exceptions.RequestException: If the root page cannot be exported
            OSError: If the root page cannot be written
        """
        root_page_id = str(root_page_id)
        self.logger.info(f"Starting export of page tree {root_page_id} to {self.output_directory}")
        self.output_directory.mkdir(parents=True, exist_ok=True)

        self.nodes = {}
        self.statuses = []

        with ProgressTracker(item_type='pages') as tracker:
            self._export_page(root_page_id, '', tracker, is_root=True)

        # Phase boundary: the tree is complete, links can be resolved
        self.index = PageIndex.from_nodes(self.nodes.values(), root_id=root_page_id)
        link_stats = self.link_rewriter.rewrite_files(self.output_directory, self.index)

        result = MigrationResult(
            output_dir=str(self.output_directory),
            pages_processed=len(self.nodes),
            pages_failed=sum(1 for s in self.statuses if s.status == 'failed'),
            links_resolved=link_stats['links_resolved'] + link_stats['legacy_links_resolved'],
            links_demoted=link_stats['links_demoted'],
            statuses=list(self.statuses)
        )
        self._log_export_summary(result)
        return result

    def _export_page(
        self,
        page_id: str,
        parent_path: str,
        tracker: ProgressTracker,
        is_root: bool = False
    ) -> Optional[PageNode]:
        """
        Export one page, then its children in Confluence order.

        Args:
            page_id: Confluence page ID
            parent_path: Output-relative path of the parent ('' for the root)
            tracker: Progress tracker of the run
            is_root: Failures of the root page are re-raised

        Returns:
            PageNode of the exported page, None if it failed
        """
        title = page_id
        try:
            page = self.client.get_page(page_id)
            title = page.get('title') or f'Page {page_id}'
            node = self._write_page(page_id, page, title, parent_path)
        except Exception as e:
            self.logger.error(f"Failed to export page '{title}' (ID: {page_id}): {e}", exc_info=True)
            tracker.increment(success=False)
            self.statuses.append(MigrationStatus(page_id, title, 'failed', error_message=str(e)))
            if is_root:
                raise
            return None

        tracker.increment(success=True)
        self.statuses.append(MigrationStatus(page_id, title, 'converted'))

        children = self.client.get_page_children(page_id)
        if children:
            self.logger.debug(f"Found {len(children)} child pages of '{title}'")
        for child in children:
            child_node = self._export_page(str(child['id']), node.path, tracker)
            if child_node:
                node.add_child(child_node.id)

        return node

    def _write_page(self, page_id: str, page: Dict[str, Any], title: str, parent_path: str) -> PageNode:
        slug = slugify(title) or f'page-{page_id}'
        page_path = self._unique_path(parent_path, slug, page_id)
        page_dir = self.output_directory / page_path
        page_dir.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Exporting page '{title}' to {page_path}")

        attachments = self.attachment_manager.download_page_attachments(page_id, slug, page_dir)

        body = ((page.get('body') or {}).get('storage') or {}).get('value') or ''
        markdown = convert_document(body, slug, attachments, logger=self.logger)
        markdown = self.attachment_manager.download_external_images(markdown, slug, page_dir)
        self.attachment_manager.copy_missing_attachments(
            markdown, page_dir, parent_path, self.output_directory
        )

        (page_dir / PAGE_FILENAME).write_text(render_page(title, markdown), encoding='utf-8')

        node = PageNode(id=page_id, title=title, slug=slug, path=page_path)
        self.nodes[page_id] = node
        return node

    def _unique_path(self, parent_path: str, slug: str, page_id: str) -> str:
        """Directory of a page; siblings with the same slug get the page id appended."""
        path = posixpath.join(parent_path, slug) + '/'
        if any(node.path == path for node in self.nodes.values()):
            path = posixpath.join(parent_path, f'{slug}-{page_id}') + '/'
            self.logger.warning(f"Duplicate page directory for '{slug}', using {path}")
        return path

    def _log_export_summary(self, result: MigrationResult) -> None:
        """Log final export statistics."""
        attachment_stats = self.attachment_manager.stats
        self.logger.info("=" * 60)
        self.logger.info("MARKDOWN EXPORT SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Pages exported: {result.pages_processed}")
        self.logger.info(f"Pages failed: {result.pages_failed}")
        self.logger.info(f"Attachments saved: {attachment_stats['downloaded']}")
        self.logger.info(f"Attachments failed: {attachment_stats['failed']}")
        self.logger.info(f"External images saved: {attachment_stats['external_downloaded']}")
        self.logger.info(f"Total attachments size: {self._format_bytes(attachment_stats['total_size_bytes'])}")
        self.logger.info(f"Internal links resolved: {result.links_resolved}")
        self.logger.info(f"Internal links demoted to text: {result.links_demoted}")
        self.logger.info(f"Output directory: {self.output_directory}")
        self.logger.info("=" * 60)

    def _format_bytes(self, bytes_val: float) -> str:
        """Format bytes to human-readable string."""
        if bytes_val == 0:
            return "0 B"

        for unit in ['B', 'KB', 'MB', 'GB']:
            if bytes_val < 1024.0:
                return f"{bytes_val:.1f} {unit}"
            bytes_val /= 1024.0
        return f"{bytes_val:.1f} TB"


__all__ = ['MarkdownExporter', 'render_page', 'yaml_scalar', 'PAGE_FILENAME']
