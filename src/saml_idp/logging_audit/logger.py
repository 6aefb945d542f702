"""Logging configuration and logger factory for the SAML IdP engine.

The engine itself only creates module loggers. configure_logging is for
host applications that want the engine's console and rotating file setup.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .formatters import SecretRedactingFormatter

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAX_LOG_FILE_SIZE = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5

# Handlers installed by configure_logging, replaced on reconfiguration
_installed_handlers: list[logging.Handler] = []

logger = logging.getLogger(__name__)


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure logging for the saml_idp package.

    Installs a console handler at the requested level and, when log_file is
    given, a rotating file handler at DEBUG level. Both use the redacting
    formatter. Calling this again replaces the handlers installed by the
    previous call.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
        redact_secrets: Mask key material and SAML payloads in output

    Raises:
        ValueError: If invalid log level is provided
        RuntimeError: If log directory cannot be created

    Example:
        >>> configure_logging(level="DEBUG")
        >>> configure_logging(level="INFO", log_file=Path("logs/idp.log"))
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )

    package_logger = logging.getLogger("saml_idp")
    for handler in _installed_handlers:
        package_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    package_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        SecretRedactingFormatter(fmt=DEFAULT_LOG_FORMAT, redact_secrets=redact_secrets)
    )
    package_logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(
                f"Failed to create log directory: {log_file.parent}. "
                f"Ensure write permissions are available. Error: {e}"
            ) from e

        file_handler = RotatingFileHandler(
            filename=str(log_file),
            maxBytes=MAX_LOG_FILE_SIZE,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            SecretRedactingFormatter(fmt=DEFAULT_LOG_FORMAT, redact_secrets=redact_secrets)
        )
        package_logger.addHandler(file_handler)
        _installed_handlers.append(file_handler)

    logger.debug(f"Logging configured: level={level}, log_file={log_file}")


def get_logger(module_name: str) -> logging.Logger:
    """Get a logger for the specified module.

    Args:
        module_name: Name of the module, typically __name__

    Returns:
        Logger instance for the module
    """
    return logging.getLogger(module_name)
