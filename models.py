"""Data models for the Confluence to VuePress migration pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger('confluence_vuepress_migrator')

# URI scheme used for internal page links until the page tree is complete
LINK_PLACEHOLDER_SCHEME = 'CONFLUENCE_LINK'


@dataclass
class Attachment:
    """A downloaded Confluence attachment and where it was saved."""

    original_name: str
    sanitized_name: str
    local_path: str
    file_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize attachment to dictionary."""
        return {
            'original_name': self.original_name,
            'sanitized_name': self.sanitized_name,
            'local_path': self.local_path,
            'file_id': self.file_id
        }


@dataclass
class PageNode:
    """A migrated page and its position in the output tree."""

    id: str
    title: str
    slug: str
    path: str  # relative to the output root, always ends with '/'
    children: List[str] = field(default_factory=list)

    @property
    def depth(self) -> int:
        """Number of directory segments between the output root and this page."""
        return len([segment for segment in self.path.split('/') if segment])

    def add_child(self, child_id: str) -> None:
        """Register a child page id, keeping Confluence order."""
        self.children.append(child_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize page node to dictionary."""
        return {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'path': self.path,
            'children': list(self.children)
        }


@dataclass(frozen=True)
class PageIndex:
    """
    Read-only view of every migrated page, built once the tree walk is over.

    Link resolution receives this value instead of the exporter's working
    state, so it can be built by hand in tests.
    """

    pages: Mapping[str, PageNode]
    by_slug: Mapping[str, PageNode]
    root_id: Optional[str] = None

    @classmethod
    def from_nodes(cls, nodes: Iterable[PageNode], root_id: Optional[str] = None) -> 'PageIndex':
        """Build an index from page nodes; the first node wins on duplicate slugs."""
        pages: Dict[str, PageNode] = {}
        by_slug: Dict[str, PageNode] = {}
        for node in nodes:
            pages[node.id] = node
            if node.slug in by_slug:
                logger.debug(
                    f"Duplicate slug '{node.slug}' for page {node.id}, "
                    f"links resolve to page {by_slug[node.slug].id}"
                )
                continue
            by_slug[node.slug] = node
        return cls(
            pages=MappingProxyType(pages),
            by_slug=MappingProxyType(by_slug),
            root_id=root_id
        )

    def get(self, page_id: str) -> Optional[PageNode]:
        """Find a page by Confluence id."""
        return self.pages.get(page_id)

    def find_by_slug(self, slug: str) -> Optional[PageNode]:
        """Find a page by slug."""
        return self.by_slug.get(slug)

    def __len__(self) -> int:
        return len(self.pages)

    def __contains__(self, page_id: object) -> bool:
        return page_id in self.pages


@dataclass
class MigrationStatus:
    """Tracks the outcome of a single page for reporting."""

    page_id: str
    page_title: str
    status: str  # "converted", "failed"
    error_message: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()


@dataclass
class MigrationResult:
    """Summary returned by a full migration run."""

    output_dir: str
    pages_processed: int = 0
    pages_failed: int = 0
    links_resolved: int = 0
    links_demoted: int = 0
    statuses: List[MigrationStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize result to dictionary."""
        return {
            'output_dir': self.output_dir,
            'pages_processed': self.pages_processed,
            'pages_failed': self.pages_failed,
            'links_resolved': self.links_resolved,
            'links_demoted': self.links_demoted,
            'failed_pages': [
                {'id': s.page_id, 'title': s.page_title, 'error': s.error_message}
                for s in self.statuses if s.status == 'failed'
            ]
        }


__all__ = [
    'LINK_PLACEHOLDER_SCHEME',
    'Attachment',
    'PageNode',
    'PageIndex',
    'MigrationStatus',
    'MigrationResult'
]
