"""
Logging for arbor.

Every arbor module logs through ``get_logger(__name__)``, so records carry
the emitting module in ``extra["name"]``:

- ``arbor.storage.executor``: each statement at DEBUG with its binding
  count and timing, failing statements at ERROR before the driver error
  propagates
- ``arbor.schema.migrator``: one INFO line per migration run or rolled back
- ``arbor.records``: inserts, updates, deletes and pivot attaches at DEBUG

Importing arbor adds no handlers; applications call ``setup_logger()``
once, which reads the ``logging`` section of the arbor configuration.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger as _logger

from arbor.config import get_config


def setup_logger(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    rotation: Optional[str] = None,
    retention: Optional[str] = None,
    format: Optional[str] = None,
) -> None:
    """Replace loguru's handlers with the ones configured for arbor.

    Arguments left as None fall back to ``LoggingConfig``. Passing
    ``log_file`` explicitly enables the file handler even when file
    logging is disabled in the configuration. Use ``level="DEBUG"`` to see
    the SQL arbor runs.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, etc.)
        log_file: Path to log file
        rotation: Log rotation setting (e.g., "100 MB", "1 day")
        retention: Log retention setting (e.g., "30 days", "1 week")
        format: Log format string
    """
    log_config = get_config().logging

    file_enabled = log_config.file_enabled or log_file is not None
    level = level or log_config.level
    log_file = log_file or log_config.file_path
    rotation = rotation or log_config.rotation
    retention = retention or log_config.retention
    format = format or log_config.format

    _logger.remove()

    if log_config.console_enabled:
        _logger.add(
            sys.stderr,
            format=format,
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    if file_enabled:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        _logger.add(
            log_file,
            format=format,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            encoding="utf-8",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )


def get_logger(name: Optional[str] = None):
    """Get the shared loguru logger, bound to a module name.

    Args:
        name: Module name stored in ``extra["name"]``, typically ``__name__``

    Returns:
        The bound logger, or the unbound one when ``name`` is empty
    """
    if name:
        return _logger.bind(name=name)
    return _logger


logger = _logger

__all__ = ["setup_logger", "get_logger", "logger"]
