"""Structured logging infrastructure with verbosity levels and progress tracking."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

LOGGER_NAME = 'confluence_vuepress_migrator'


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with configurable verbosity levels.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string

    Returns:
        Configured logger instance
    """
    # Determine log level
    if level:
        # Validate level before using it
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    else:
        # Default levels based on verbosity
        if verbosity >= 2:
            log_level = logging.DEBUG
        elif verbosity >= 1:
            log_level = logging.INFO
        else:
            log_level = logging.WARNING

    # Set default formats
    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    if date_format is None:
        date_format = '%Y-%m-%d %H:%M:%S'

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)

    # Clear existing handlers
    logger.handlers.clear()

    # Console handler with colored output
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        try:
            # Use rotating file handler
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,  # Keep 5 backups
                encoding='utf-8'
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)

            logger.info(f"Logging to file: {log_file}")
            logger.info(f"Log level: {logging.getLevelName(log_level)}")
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {str(e)}")
    else:
        logger.info(f"Console logging only. Level: {logging.getLevelName(log_level)}")

    return logger


class ProgressTracker:
    """
    Context manager for tracking progress across operations.

    ``total_items`` may be None when the amount of work is only known at the
    end, as with a page tree discovered while it is walked.
    """

    def __init__(self, total_items: Optional[int] = None, item_type: str = "items"):
        """
        Initialize progress tracker.

        Args:
            total_items: Total number of items to process, if known
            item_type: Description of item type (e.g., "pages", "attachments")
        """
        self.total_items = total_items
        self.item_type = item_type
        self.processed_items = 0
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)

    def __enter__(self) -> 'ProgressTracker':
        """Enter progress tracking context."""
        self.start_time = time.time()
        if self.total_items is None:
            self.logger.info(f"Starting processing of {self.item_type}")
        else:
            self.logger.info(f"Starting processing of {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit progress tracking context and log summary."""
        if self.start_time is None:
            return

        stats = self.get_stats()

        # Use appropriate log level based on failure rate
        if self.failed_items > 0 and self.failed_items == self.processed_items:
            log_method = self.logger.error
        elif self.failed_items > 0:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        log_method(f"=== Progress Summary: {self.item_type.upper()} ===")
        log_method(f"Total: {stats['total']}")
        log_method(f"Processed: {self.processed_items}")
        log_method(f"Successful: {self.successful_items}")
        log_method(f"Failed: {self.failed_items}")
        log_method(f"Success Rate: {stats['success_rate']:.1f}%")
        log_method(f"Elapsed Time: {stats['elapsed_time_formatted']}")

    def increment(self, success: bool = True) -> None:
        """
        Increment progress counter.

        Args:
            success: Whether the item was processed successfully
        """
        self.processed_items += 1

        if success:
            self.successful_items += 1
        else:
            self.failed_items += 1

        # Log progress every 10 items or on failure
        if self.processed_items % 10 == 0 or not success:
            status = "Success" if success else "Failed"
            if self.total_items is None:
                progress = f"{self.processed_items} {self.item_type}"
            else:
                remaining = self.total_items - self.processed_items
                progress = f"{self.processed_items}/{self.total_items} {self.item_type} ({remaining} remaining)"
            self.logger.info(f"Processed {progress} - Last: {status}")

    def get_stats(self) -> Dict[str, Any]:
        """Get current progress statistics."""
        if self.start_time is None:
            elapsed = 0.0
        else:
            elapsed = time.time() - self.start_time

        total = self.total_items if self.total_items is not None else self.processed_items

        return {
            'total': total,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'failed': self.failed_items,
            'success_rate': (self.successful_items / total * 100) if total > 0 else 0,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': self._format_elapsed(elapsed)
        }

    @staticmethod
    def _format_elapsed(seconds: float) -> str:
        """Format elapsed time in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"

        minutes = int(seconds // 60)
        seconds = int(seconds % 60)

        if minutes < 60:
            return f"{minutes}m {seconds}s"

        hours = minutes // 60
        minutes = minutes % 60

        return f"{hours}h {minutes}m {seconds}s"


def log_section(title: str) -> None:
    """
    Log a decorative section header.

    Args:
        title: Section title to display
    """
    logger = logging.getLogger(LOGGER_NAME)

    separator = "=" * 60
    logger.info("")
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)
    logger.info("")


def log_config(config: Dict[str, Any]) -> None:
    """
    Log sanitized configuration for debugging.

    Args:
        config: Configuration dictionary to log
    """
    logger = logging.getLogger(LOGGER_NAME)

    sanitized_config = _sanitize_config(config)

    log_section("Configuration")

    # Log Confluence settings
    confluence = sanitized_config.get('confluence', {})
    logger.info(f"Confluence Base URL: {confluence.get('base_url', 'Not Set')}")
    if confluence.get('email'):
        logger.info(f"Email: {confluence.get('email')}")
    logger.info("API Token: ***REDACTED***" if confluence.get('api_token') else "API Token: Not Set")
    if confluence.get('space_key'):
        logger.info(f"Space Key: {confluence.get('space_key')}")

    logger.info("")

    # Log migration settings
    migration = sanitized_config.get('migration', {})
    logger.info(f"Root Page ID: {migration.get('root_page_id', 'Not Set')}")
    logger.info(f"Download External Images: {migration.get('download_external_images', True)}")

    logger.info("")

    # Log export and site settings
    export_settings = sanitized_config.get('export', {})
    site = sanitized_config.get('site', {})
    logger.info(f"Output Directory: {export_settings.get('output_directory', './docs')}")
    logger.info(f"Site Title: {site.get('title', 'Documentation')}")
    logger.info(f"Site Description: {site.get('description', 'Migrated from Confluence')}")


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a sanitized copy of configuration with sensitive fields masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    sanitized = copy.deepcopy(config)

    # Define sensitive field patterns
    sensitive_fields = {'password', 'secret', 'api_token', 'access_token', 'auth_header'}

    def mask_sensitive(data: Any) -> Any:
        """Recursively mask sensitive fields."""
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                is_sensitive = any(sensitive in str(key).lower() for sensitive in sensitive_fields)
                if is_sensitive and isinstance(value, str):
                    masked[key] = "***REDACTED***"
                else:
                    masked[key] = mask_sensitive(value)
            return masked
        elif isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        else:
            return data

    return mask_sensitive(sanitized)


__all__ = [
    'setup_logging',
    'ProgressTracker',
    'log_section',
    'log_config',
    'LOGGER_NAME'
]
