#!/usr/bin/env python3
"""
Confluence to VuePress Migration Tool - Main CLI Entry Point

This script provides the command-line interface for migrating a tree of
Confluence pages into a VuePress documentation site, preserving the page
hierarchy, attachments and internal links.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

import requests

from config_loader import ConfigLoader, get_nested
from confluence_client import ConfluenceClient
from exporters import MarkdownExporter, SiteGenerator
from logger import LOGGER_NAME, log_config, log_section, setup_logging
from models import MigrationResult

# Version
__version__ = "1.0.0"

# Files written by ``init`` for each format
INIT_FILES = {
    'json': '.confluencerc.json',
    'yaml': 'confluence.yaml',
    'env': '.env.example',
}


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='confluence-to-vuepress',
        description="Migrate Confluence pages to a VuePress static site",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Migrate a page tree using a config file
  confluence-to-vuepress migrate --config confluence.yaml

  # Migrate with everything on the command line
  confluence-to-vuepress migrate -u https://yoursite.atlassian.net -p 12345678 \\
      -e you@example.com -t $CONFLUENCE_API_TOKEN -o ./docs

  # Check credentials against a page
  confluence-to-vuepress test -p 12345678

  # Write a sample configuration
  confluence-to-vuepress init --format yaml

  # Verbose logging
  confluence-to-vuepress migrate -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    # Options shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )
    common.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file (rotated at 10MB)'
    )

    subparsers = parser.add_subparsers(dest='command', metavar='<command>')
    subparsers.required = True

    # migrate
    migrate_parser = subparsers.add_parser(
        'migrate',
        parents=[common],
        help='Run the migration from Confluence to VuePress'
    )
    _add_connection_arguments(migrate_parser)
    migrate_parser.add_argument('-s', '--space', type=str, help='Confluence space key')
    migrate_parser.add_argument('-o', '--output', type=str, help='Output directory (default: ./docs)')
    migrate_parser.add_argument('--title', type=str, help='Site title (default: Documentation)')
    migrate_parser.add_argument(
        '--description',
        type=str,
        help='Site description (default: Migrated from Confluence)'
    )
    migrate_parser.add_argument(
        '--no-external-images',
        action='store_true',
        help='Skip downloading external images'
    )
    migrate_parser.set_defaults(func=cmd_migrate)

    # test
    test_parser = subparsers.add_parser(
        'test',
        parents=[common],
        help='Test connection to Confluence'
    )
    _add_connection_arguments(test_parser)
    test_parser.set_defaults(func=cmd_test)

    # init
    init_parser = subparsers.add_parser(
        'init',
        parents=[common],
        help='Create a sample configuration file'
    )
    init_parser.add_argument(
        '-f', '--format',
        choices=sorted(INIT_FILES),
        default='json',
        help='Config format (default: json)'
    )
    init_parser.add_argument(
        '--force',
        action='store_true',
        help='Overwrite an existing file'
    )
    init_parser.set_defaults(func=cmd_init)

    return parser


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-u', '--url', type=str, help='Confluence base URL (e.g., https://yoursite.atlassian.net)')
    parser.add_argument('-p', '--page-id', type=str, help='Root page ID')
    parser.add_argument('-e', '--email', type=str, help='Confluence account email')
    parser.add_argument('-t', '--token', type=str, help='Confluence API token')
    parser.add_argument('-c', '--config', type=str, help='Path to config file (YAML or JSON)')


def run_migration(config: dict, logger: logging.Logger) -> MigrationResult:
    """
    Execute the complete migration pipeline.

    Args:
        config: Validated configuration
        logger: Logger instance

    Returns:
        MigrationResult of the run

    Raises:
        requests.exceptions.RequestException: If the root page cannot be fetched
        OSError: If the output cannot be written
    """
    log_section("Exporting pages")
    client = ConfluenceClient.from_config(config)
    exporter = MarkdownExporter(client, config, logger=logger)
    result = exporter.export(str(get_nested(config, 'migration.root_page_id')))

    log_section("Generating VuePress site")
    SiteGenerator(config, logger=logger).generate(exporter.output_directory, exporter.index)

    return result


def _print_summary(result: MigrationResult) -> None:
    """Print the run summary and the commands to preview the site."""
    print("\n" + "=" * 60)
    print("MIGRATION SUMMARY")
    print("=" * 60)
    print(f"Pages migrated: {result.pages_processed}")
    if result.pages_failed:
        print(f"Pages failed: {result.pages_failed}")
    print(f"Internal links resolved: {result.links_resolved}")
    if result.links_demoted:
        print(f"Internal links without target page: {result.links_demoted}")
    print(f"Output: {result.output_dir}")
    print("\nNext steps:")
    print(f"  cd {result.output_dir}")
    print("  npm install")
    print("  npm run dev")


def cmd_migrate(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Run the ``migrate`` subcommand."""
    config = ConfigLoader.resolve(args)
    ConfigLoader.validate(config)

    # Reconfigure logging with config file settings
    _setup_logging(args, config)
    log_config(config)

    result = run_migration(config, logger)
    _print_summary(result)

    if result.pages_failed:
        logger.warning(f"Migration completed with {result.pages_failed} failed pages")
    else:
        logger.info("Migration completed successfully")
    return 0


def cmd_test(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Run the ``test`` subcommand."""
    config = ConfigLoader.resolve(args)
    page_id = get_nested(config, 'migration.root_page_id')
    if not get_nested(config, 'confluence.base_url') or not page_id:
        raise ValueError("Confluence URL and page ID are required to test the connection")

    print("Testing connection to Confluence...")
    client = ConfluenceClient.from_config(config)
    result = client.test_connection(str(page_id))

    if not result['success']:
        logger.error(f"Connection failed: {result['error']}")
        print(f"Connection failed: {result['error']}", file=sys.stderr)
        return 1

    print("Connection successful!")
    print(f"  Page title: {result['page_title']}")
    if result.get('space_key'):
        print(f"  Space key: {result['space_key']}")
    return 0


def cmd_init(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Run the ``init`` subcommand."""
    filename = INIT_FILES[args.format]
    if os.path.exists(filename) and not args.force:
        logger.error(f"{filename} already exists (use --force to overwrite)")
        print(f"ERROR: {filename} already exists (use --force to overwrite)", file=sys.stderr)
        return 1

    with open(filename, 'w', encoding='utf-8') as f:
        f.write(ConfigLoader.sample(args.format))

    logger.info(f"Wrote sample configuration to {filename}")
    print(f"Created {filename}")
    if args.format == 'env':
        print("  Copy to .env and fill in your values")
    else:
        print("  Fill in your Confluence credentials and settings")
    return 0


def _setup_logging(args: argparse.Namespace, config: Optional[dict] = None) -> logging.Logger:
    """Configure logging from the verbosity flags, falling back to the config file."""
    config = config or {}
    level = get_nested(config, 'logging.level') if not args.verbose else None
    log_file = args.log_file or get_nested(config, 'logging.file')
    return setup_logging(verbosity=args.verbose, log_file=log_file, level=level)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    _setup_logging(args)
    logger = logging.getLogger(f'{LOGGER_NAME}.cli')
    logger.info(f"Confluence to VuePress v{__version__}: {args.command}")

    try:
        return args.func(args, logger)

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 1
    except requests.exceptions.RequestException as e:
        logger.error(f"Migration failed: {e}")
        print(f"ERROR: Migration failed: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nMigration interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
