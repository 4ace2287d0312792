"""
Centralized logger configuration for ordersaga.

Provides a unified logging interface that can be customized by the user.
By default, uses Python's standard logging with the 'ordersaga' namespace.

Usage:
    # Use default logger
    from ordersaga.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")

    # Set custom logger (e.g., structlog, loguru)
    from ordersaga.core.logger import set_logger
    import structlog
    set_logger(structlog.get_logger())
"""

import logging
from typing import Any

# Global logger instance - defaults to standard logging
_custom_logger: Any = None


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all ordersaga components.

    Args:
        logger: A logger instance (e.g., structlog logger, loguru logger)
                Must support debug/info/warning/error/exception/critical.
    """
    global _custom_logger
    _custom_logger = logger


def reset_logger() -> None:
    """Drop any custom logger and go back to standard logging."""
    global _custom_logger
    _custom_logger = None


def get_logger(name: str = "ordersaga") -> Any:
    """
    Get a logger instance.

    If a custom logger was set via set_logger(), returns that.
    Otherwise, returns a standard Python logger with the given name.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)

    # Ensure we have at least a NullHandler to avoid "No handler found" warnings
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger

