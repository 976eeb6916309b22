"""Unit tests for logger configuration."""

import io
from pathlib import Path

import pytest
import yaml
from loguru import logger as _logger
from sqlalchemy.exc import OperationalError

from arbor.config import Config, LoggingConfig, load_config_from_yaml, set_config
from arbor.logger import get_logger, logger as app_logger, setup_logger
from arbor.schema.migrator import Migrator

FIXTURES = Path(__file__).resolve().parent.parent / "fixtures" / "migrations"


def capture(level: str = "DEBUG") -> tuple[io.StringIO, int]:
    output = io.StringIO()
    handler_id = _logger.add(output, format="{level} | {extra[name]} | {message}", level=level)
    return output, handler_id


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_adds_handlers(self):
        """Test that setup_logger leaves a working logger."""
        setup_logger()

        output = io.StringIO()
        handler_id = _logger.add(output, format="{message}")
        _logger.info("Test")
        assert "Test" in output.getvalue()
        _logger.remove(handler_id)

    def test_setup_logger_with_log_file(self, tmp_path):
        """Test an explicit log file enables the file handler."""
        log_file = tmp_path / "logs" / "test.log"

        setup_logger(level="DEBUG", log_file=str(log_file), rotation="10 MB", retention="1 day")
        _logger.info("Test message")
        _logger.remove()  # Flushes the enqueued file handler

        content = log_file.read_text()
        assert "Test message" in content
        assert "INFO" in content

    def test_file_handler_from_config(self, tmp_path):
        """Test file logging switched on through the configuration."""
        log_file = tmp_path / "arbor.log"
        set_config(Config(logging=LoggingConfig(file_enabled=True, file_path=str(log_file), console_enabled=False)))

        setup_logger()
        _logger.warning("From config")
        _logger.remove()

        assert "From config" in log_file.read_text()

    def test_level_filtering(self, tmp_path):
        """Test the configured level filters lower records."""
        log_file = tmp_path / "level.log"
        set_config(Config(logging=LoggingConfig(console_enabled=False)))

        setup_logger(level="WARNING", log_file=str(log_file), format="{level} | {message}")
        _logger.info("Info message")
        _logger.error("Error message")
        _logger.remove()

        content = log_file.read_text()
        assert "Info message" not in content
        assert "Error message" in content


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_without_name(self):
        """Test get_logger returns the shared logger."""
        assert get_logger() is app_logger

    def test_get_logger_binds_name(self):
        """Test that get_logger binds the module name."""
        output, handler_id = capture()
        get_logger("arbor.test").info("Bound")
        _logger.remove(handler_id)
        assert "INFO | arbor.test | Bound" in output.getvalue()


class TestLibraryLogging:
    """Tests for log records emitted by arbor itself."""

    def test_executor_logs_statements(self, executor):
        """Test each statement is logged at DEBUG."""
        output, handler_id = capture()
        executor.execute("SELECT ?", [1])
        _logger.remove(handler_id)
        assert "DEBUG | arbor.storage.executor | SELECT ? [1 binding(s)" in output.getvalue()

    def test_executor_logs_failures(self, executor):
        """Test failing statements are logged at ERROR before propagating."""
        output, handler_id = capture(level="ERROR")
        with pytest.raises(OperationalError):
            executor.execute("SELEKT 1")
        _logger.remove(handler_id)
        assert "ERROR | arbor.storage.executor | Statement failed" in output.getvalue()

    def test_migrator_logs_each_migration(self, executor):
        """Test every migration run is logged at INFO."""
        output, handler_id = capture(level="INFO")
        Migrator(executor, path=str(FIXTURES)).run()
        _logger.remove(handler_id)

        log = output.getvalue()
        assert "INFO | arbor.schema.migrator | Migrated: 001_create_users_table" in log
        assert "INFO | arbor.schema.migrator | Migrated: 002_create_posts_table" in log


class TestConfigIntegration:
    """Tests for logging settings loaded from YAML."""

    def test_rotation_defaults(self):
        """Test rotation and retention defaults."""
        config = Config()
        assert config.logging.rotation == "100 MB"
        assert config.logging.retention == "30 days"

    def test_logger_with_yaml_config(self, tmp_path):
        """Test that logger works with values from a YAML file."""
        config_file = tmp_path / "arbor.yaml"
        log_file = tmp_path / "test.log"
        with config_file.open("w") as f:
            yaml.dump(
                {
                    "logging": {
                        "level": "DEBUG",
                        "file_enabled": True,
                        "file_path": str(log_file),
                        "console_enabled": False,
                    }
                },
                f,
            )

        set_config(load_config_from_yaml(str(config_file)))
        setup_logger()
        _logger.debug("Debug test")
        _logger.remove()

        assert "Debug test" in log_file.read_text()
