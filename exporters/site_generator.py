"""VuePress site scaffold generator for an exported page tree."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from models import PageIndex

from .markdown_exporter import yaml_scalar

VUEPRESS_DIRECTORY = '.vuepress'

PACKAGE_JSON = {
    'name': 'docs',
    'version': '1.0.0',
    'scripts': {
        'dev': 'vuepress dev',
        'build': 'vuepress build'
    },
    'devDependencies': {
        'vuepress': '^2.0.0-rc.18',
        '@vuepress/bundler-vite': '^2.0.0-rc.18',
        '@vuepress/theme-default': '^2.0.0-rc.61',
        'sass-embedded': '^1.83.0'
    }
}

CUSTOM_STYLES = """:root {
  --content-width: 100%;
  --homepage-width: 100%;
}

.theme-default-content {
  max-width: none;
}

.theme-default-content table {
  display: table;
  width: 100%;
}
"""

# Sidebar keys written unquoted in config.js
_SIDEBAR_KEYS = re.compile(r'"(text|link|children|collapsible)":')


def js_string(value: str) -> str:
    """Single-quoted JavaScript string literal."""
    escaped = value.replace('\\', '\\\\').replace("'", "\\'").replace('\n', '\\n')
    return f"'{escaped}'"


class SiteGenerator:
    """
    Writes the VuePress scaffold around the exported pages.

    Files created under the output directory:
    - ``.vuepress/config.js`` with the sidebar mirroring the page tree
    - ``README.md`` homepage linking to the root page
    - ``package.json`` with the VuePress 2 dev dependencies
    - ``.vuepress/styles/index.scss`` with full-width content rules
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, logger: Optional[logging.Logger] = None):
        """
        Initialize the site generator.

        Args:
            config: Configuration dictionary with site settings
            logger: Logger instance
        """
        self.config = config or {}
        self.logger = logger or logging.getLogger('confluence_vuepress_migrator.exporters.site_generator')

        site_config = self.config.get('site', {})
        self.title = site_config.get('title') or 'Documentation'
        self.description = site_config.get('description') or 'Migrated from Confluence'

    def generate(self, output_dir, index: PageIndex) -> None:
        """
        Write all scaffold files.

        Args:
            output_dir: Root of the exported site
            index: Completed page index
        """
        output_dir = Path(output_dir)
        vuepress_dir = output_dir / VUEPRESS_DIRECTORY
        styles_dir = vuepress_dir / 'styles'
        styles_dir.mkdir(parents=True, exist_ok=True)

        self._write(vuepress_dir / 'config.js', self.build_config(index))
        self._write(output_dir / 'README.md', self.build_homepage(index))
        self._write(output_dir / 'package.json', json.dumps(PACKAGE_JSON, indent=2) + '\n')
        self._write(styles_dir / 'index.scss', CUSTOM_STYLES)

    def _write(self, path: Path, content: str) -> None:
        path.write_text(content, encoding='utf-8')
        self.logger.info(f"Saved: {path}")

    def build_sidebar(self, index: PageIndex, page_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Sidebar entry for a page and its descendants.

        Args:
            index: Completed page index
            page_id: Page to start from (default: the root page)

        Returns:
            Nested sidebar dictionary, None when the page is not in the index
        """
        node = index.get(page_id or index.root_id)
        if node is None:
            return None

        item: Dict[str, Any] = {
            'text': node.title,
            'link': '/' + node.path
        }

        children = [self.build_sidebar(index, child_id) for child_id in node.children]
        children = [child for child in children if child]
        if children:
            item['children'] = children
            item['collapsible'] = True

        return item

    def build_config(self, index: PageIndex) -> str:
        """Content of ``.vuepress/config.js``."""
        root_item = self.build_sidebar(index)
        sidebar = json.dumps([root_item] if root_item else [], indent=2, ensure_ascii=False)
        sidebar = _SIDEBAR_KEYS.sub(r'\1:', sidebar)
        # Nest the sidebar under theme: defaultTheme({ ... })
        sidebar = sidebar.replace('\n', '\n    ')

        return f"""import {{ defaultTheme }} from '@vuepress/theme-default'
import {{ viteBundler }} from '@vuepress/bundler-vite'

export default {{
  title: {js_string(self.title)},
  description: {js_string(self.description)},

  bundler: viteBundler(),

  theme: defaultTheme({{
    sidebar: {sidebar},

    nav: [
      {{ text: 'Home', link: '/' }}
    ]
  }})
}}
"""

    def build_homepage(self, index: PageIndex) -> str:
        """Content of the homepage ``README.md``."""
        root = index.get(index.root_id)
        root_path = root.path if root else ''

        return (
            "---\n"
            "home: true\n"
            "title: Home\n"
            f"heroText: {yaml_scalar(self.title)}\n"
            f"tagline: {yaml_scalar(self.description)}\n"
            "actions:\n"
            "  - text: Get Started\n"
            f"    link: /{root_path}\n"
            "    type: primary\n"
            "---\n"
        )


__all__ = ['SiteGenerator', 'PACKAGE_JSON', 'VUEPRESS_DIRECTORY', 'js_string']
