"""Logging Audit module.

This module provides logging configuration and audit trail functionality.
"""

from .audit import (
    LOGIN_REQUEST_PARSED,
    LOGIN_REQUEST_REJECTED,
    LOGIN_RESPONSE_CREATED,
    LOGOUT_REQUEST_PARSED,
    LOGOUT_REQUEST_REJECTED,
    log_audit_event,
)
from .formatters import SecretRedactingFormatter
from .logger import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "log_audit_event",
    "LOGIN_REQUEST_PARSED",
    "LOGIN_REQUEST_REJECTED",
    "LOGIN_RESPONSE_CREATED",
    "LOGOUT_REQUEST_PARSED",
    "LOGOUT_REQUEST_REJECTED",
    "SecretRedactingFormatter",
]
