"""Tests for logging setup and progress tracking."""

import logging

import pytest

from logger import LOGGER_NAME, ProgressTracker, _sanitize_config, setup_logging


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        handler.close()
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)


class TestSetupLogging:
    """Test logger configuration."""

    @pytest.mark.parametrize('verbosity, expected', [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, logging.DEBUG),
        (5, logging.DEBUG),
    ])
    def test_verbosity_levels(self, verbosity, expected):
        assert setup_logging(verbosity=verbosity).level == expected

    def test_explicit_level_wins(self):
        assert setup_logging(verbosity=2, level='error').level == logging.ERROR

    def test_invalid_level(self):
        with pytest.raises(ValueError, match='Invalid log level'):
            setup_logging(level='LOUD')

    def test_handlers_replaced_on_reconfigure(self):
        setup_logging()
        logger = setup_logging(verbosity=1)
        assert len(logger.handlers) == 1

    def test_log_file(self, tmp_path):
        log_file = tmp_path / 'migration.log'
        logger = setup_logging(verbosity=1, log_file=str(log_file))
        logger.info('written to file')

        for handler in logger.handlers:
            handler.flush()
        assert 'written to file' in log_file.read_text(encoding='utf-8')


class TestProgressTracker:
    """Test progress statistics."""

    def test_known_total(self):
        with ProgressTracker(total_items=4, item_type='pages') as tracker:
            tracker.increment()
            tracker.increment(success=False)
            stats = tracker.get_stats()

        assert stats['total'] == 4
        assert stats['processed'] == 2
        assert stats['failed'] == 1
        assert stats['success_rate'] == 25.0

    def test_unknown_total_uses_processed(self):
        with ProgressTracker(item_type='pages') as tracker:
            for _ in range(3):
                tracker.increment()
            stats = tracker.get_stats()

        assert stats['total'] == 3
        assert stats['success_rate'] == 100.0

    def test_empty_run(self):
        tracker = ProgressTracker()
        assert tracker.get_stats()['success_rate'] == 0
        assert tracker.get_stats()['elapsed_time'] == 0.0

    @pytest.mark.parametrize('seconds, expected', [
        (5, '5.0s'),
        (125, '2m 5s'),
        (3725, '1h 2m 5s'),
    ])
    def test_format_elapsed(self, seconds, expected):
        assert ProgressTracker._format_elapsed(seconds) == expected


def test_sanitize_config_masks_secrets():
    config = {
        'confluence': {'base_url': 'https://acme.atlassian.net', 'api_token': 'abc'},
        'proxies': [{'password': 'hunter2'}],
    }

    sanitized = _sanitize_config(config)

    assert sanitized['confluence']['api_token'] == '***REDACTED***'
    assert sanitized['confluence']['base_url'] == 'https://acme.atlassian.net'
    assert sanitized['proxies'][0]['password'] == '***REDACTED***'
    assert config['confluence']['api_token'] == 'abc'
