"""Export package writing converted Confluence pages as a VuePress site.

Package Structure:
- markdown_exporter: Walks the page tree and writes one README.md per page
- attachment_manager: Downloads attachments and external images per page
- link_rewriter: Resolves internal link placeholders once the tree is complete
- site_generator: Writes the VuePress config, homepage, package.json and styles

Output Layout:
- <output>/<parent path>/<slug>/README.md for every page
- <page dir>/attachments/<slug>/<file> for the page's attachments
- <output>/.vuepress/ for the site configuration
"""

from .markdown_exporter import MarkdownExporter
from .attachment_manager import AttachmentManager
from .link_rewriter import LinkRewriter, relative_path
from .site_generator import SiteGenerator

__all__ = [
    'MarkdownExporter',
    'AttachmentManager',
    'LinkRewriter',
    'SiteGenerator',
    'relative_path'
]
