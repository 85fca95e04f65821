"""
Logging configuration for production use.

Provides console output and optional rotated file output.
Integrates with Config for environment-specific log levels.
"""

import logging
import logging.handlers
from typing import Optional

from .config import Config


def setup_logging(
    logger_name: str = "testpulse", config: Optional[Config] = None
) -> logging.Logger:
    """
    Configure and return a logger instance.

    Modules log through ``logging.getLogger(__name__)``; calling this once for
    the "testpulse" root attaches handlers for the whole package.

    Args:
        logger_name: Name of the logger (typically the package name)
        config: Settings to read the level and log directory from

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Don't add handlers if logger already configured
    if logger.handlers:
        return logger

    config = config or Config()
    logger.setLevel(config.log_level)

    # Formatter for consistent output
    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_to_file:
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = config.logs_dir / f"{logger_name}.log"
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(config.log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
