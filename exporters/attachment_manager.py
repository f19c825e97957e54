"""Attachment manager for downloading page attachments and external images."""

import logging
import posixpath
import re
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import requests
from tqdm import tqdm

from converters.sanitizer import sanitize_filename
from models import Attachment

ATTACHMENT_DIRECTORY = 'attachments'

IMAGE_EXTENSIONS = re.compile(r'\.(png|jpg|jpeg|gif|svg|webp|bmp)$', re.IGNORECASE)
EXTERNAL_IMAGE_PATTERN = re.compile(r'!\[([^\]]*)\]\((https?://[^)\s]+)((?:\s+"[^"]*")?)\)')
LOCAL_IMAGE_PATTERN = re.compile(
    r'(?:!\[[^\]]*\]\(|src=")\./' + ATTACHMENT_DIRECTORY + r'/([^/)"\s]+)/([^)"\s]+)'
)


class AttachmentManager:
    """
    Manages attachment downloads for the pages of one migration.

    This manager:
    1. Downloads every attachment of a page next to the page's README.md
    2. Downloads external images referenced from the Markdown
    3. Copies images a page references but does not own from its ancestors
    """

    def __init__(
        self,
        confluence_client,
        config: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the attachment manager.

        Args:
            confluence_client: ConfluenceClient instance
            config: Configuration dictionary
            logger: Logger instance
        """
        self.confluence_client = confluence_client
        self.config = config or {}
        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.exporters.attachment_manager')

        self.download_external = self.config.get('migration', {}).get('download_external_images', True)
        self.show_progress = self.config.get('export', {}).get('progress_bars', False)

        # Initialize statistics
        self.stats = {
            'downloaded': 0,
            'failed': 0,
            'external_downloaded': 0,
            'external_failed': 0,
            'copied_from_ancestors': 0,
            'missing': 0,
            'total_size_bytes': 0
        }

    def download_page_attachments(self, page_id: str, page_slug: str, page_dir: Path) -> List[Attachment]:
        """
        Download all attachments of a page.

        Files go to ``<page_dir>/attachments/<slug>/<sanitized name>``. An
        attachment that fails to download is logged and left out.

        Args:
            page_id: Confluence page ID
            page_slug: Slug of the page
            page_dir: Directory holding the page's README.md

        Returns:
            Attachment records for the files that were saved
        """
        items = self.confluence_client.get_attachments(page_id)
        if not items:
            return []

        attachment_dir = Path(page_dir) / ATTACHMENT_DIRECTORY / page_slug
        attachment_dir.mkdir(parents=True, exist_ok=True)

        self.logger.debug(f"Downloading {len(items)} attachment(s) for page {page_id}")

        iterator = items
        if self.show_progress:
            iterator = tqdm(items, desc=f"Attachments: {page_slug[:30]}", leave=False)

        saved = []
        for item in iterator:
            attachment = self._download_attachment(item, page_slug, attachment_dir)
            if attachment:
                saved.append(attachment)

        return saved

    def _download_attachment(self, item: Dict[str, Any], page_slug: str, attachment_dir: Path) -> Optional[Attachment]:
        original_name = item.get('title') or ''
        safe_name = sanitize_filename(original_name)
        if not safe_name:
            self.logger.warning(f"Skipping attachment {item.get('id')} without a file name")
            self.stats['failed'] += 1
            return None

        url = self.confluence_client.attachment_url(item)
        if not url:
            self.logger.warning(f"No download link for attachment '{original_name}'")
            self.stats['failed'] += 1
            return None

        try:
            content = self.confluence_client.download(url)
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Failed to download attachment '{original_name}': {e}")
            self.stats['failed'] += 1
            return None

        (attachment_dir / safe_name).write_bytes(content)
        self.stats['downloaded'] += 1
        self.stats['total_size_bytes'] += len(content)
        self.logger.debug(f"Downloaded: {safe_name}")

        return Attachment(
            original_name=original_name,
            sanitized_name=safe_name,
            local_path=f'./{ATTACHMENT_DIRECTORY}/{page_slug}/{safe_name}',
            file_id=(item.get('extensions') or {}).get('fileId')
        )

    def download_external_images(self, markdown: str, page_slug: str, page_dir: Path) -> str:
        """
        Download ``![alt](http...)`` images and point the Markdown at the copies.

        A failed download is logged and the image keeps its remote URL.

        Args:
            markdown: Page Markdown
            page_slug: Slug of the page
            page_dir: Directory holding the page's README.md

        Returns:
            Updated Markdown
        """
        if not self.download_external or not markdown:
            return markdown

        matches = EXTERNAL_IMAGE_PATTERN.findall(markdown)
        if not matches:
            return markdown

        self.logger.debug(f"Found {len(matches)} external image(s) in '{page_slug}'")
        attachment_dir = Path(page_dir) / ATTACHMENT_DIRECTORY / page_slug
        attachment_dir.mkdir(parents=True, exist_ok=True)

        downloaded: Dict[str, Optional[str]] = {}

        def replace_image(match):
            alt, url, title = match.group(1), match.group(2), match.group(3)
            if url not in downloaded:
                downloaded[url] = self._download_external(url, page_slug, attachment_dir)
            local_path = downloaded[url]
            if local_path is None:
                return match.group(0)
            return f'![{alt}]({local_path}{title})'

        return EXTERNAL_IMAGE_PATTERN.sub(replace_image, markdown)

    def _download_external(self, url: str, page_slug: str, attachment_dir: Path) -> Optional[str]:
        filename = posixpath.basename(unquote(urlparse(url).path)) or 'image'
        if not IMAGE_EXTENSIONS.search(filename):
            filename += '.png'
        filename = sanitize_filename(filename)

        try:
            content = self.confluence_client.download(url, external=True)
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Failed to download external image {url[:60]}: {e}")
            self.stats['external_failed'] += 1
            return None

        (attachment_dir / filename).write_bytes(content)
        self.stats['external_downloaded'] += 1
        self.stats['total_size_bytes'] += len(content)
        self.logger.debug(f"Downloaded external image: {filename}")
        return f'./{ATTACHMENT_DIRECTORY}/{page_slug}/{filename}'

    def copy_missing_attachments(
        self,
        markdown: str,
        page_dir: Path,
        parent_path: str,
        output_dir: Path
    ) -> int:
        """
        Copy referenced local images that are missing on disk from ancestor pages.

        Pages often show images uploaded to a parent page. Ancestors are
        searched nearest first; a file found nowhere is logged.

        Args:
            markdown: Page Markdown
            page_dir: Directory holding the page's README.md
            parent_path: Output-relative path of the parent page ('' for the root)
            output_dir: Root of the exported site

        Returns:
            Number of files copied
        """
        if not markdown:
            return 0

        copied = 0
        for slug, filename in set(LOCAL_IMAGE_PATTERN.findall(markdown)):
            local_file = Path(page_dir) / ATTACHMENT_DIRECTORY / slug / filename
            if local_file.exists():
                continue

            source = self._find_in_ancestors(filename, parent_path, Path(output_dir))
            if source is None:
                self.logger.warning(f"Missing attachment: {filename}")
                self.stats['missing'] += 1
                continue

            local_file.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, local_file)
            copied += 1
            self.stats['copied_from_ancestors'] += 1
            self.logger.debug(f"Copied from ancestor: {filename}")

        return copied

    @staticmethod
    def _find_in_ancestors(filename: str, parent_path: str, output_dir: Path) -> Optional[Path]:
        search_path = (parent_path or '').strip('/')
        while search_path:
            ancestor_slug = posixpath.basename(search_path)
            candidate = output_dir / search_path / ATTACHMENT_DIRECTORY / ancestor_slug / filename
            if candidate.is_file():
                return candidate
            search_path = posixpath.dirname(search_path)
        return None


__all__ = ['AttachmentManager', 'ATTACHMENT_DIRECTORY']
