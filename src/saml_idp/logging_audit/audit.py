"""Audit trail for SAML protocol operations.

Audit lines record who talked to whom and with which message IDs. They never
carry the message payload or key material.
"""

import time
import uuid
from typing import Any, Dict

from .logger import get_logger

logger = get_logger(__name__)

LOGIN_RESPONSE_CREATED = "LOGIN_RESPONSE_CREATED"
LOGIN_REQUEST_PARSED = "LOGIN_REQUEST_PARSED"
LOGIN_REQUEST_REJECTED = "LOGIN_REQUEST_REJECTED"
LOGOUT_REQUEST_PARSED = "LOGOUT_REQUEST_PARSED"
LOGOUT_REQUEST_REJECTED = "LOGOUT_REQUEST_REJECTED"


def log_audit_event(event_type: str, details: Dict[str, Any]) -> None:
    """Log an audit trail event.

    Events are logged at INFO level, or ERROR when details["status"] is
    "failure". The details dict is not modified.

    Args:
        event_type: Event name, e.g. LOGIN_RESPONSE_CREATED
        details: Event fields. Common fields include:
                - status: "success" or "failure"
                - idp: IdP entity ID
                - sp: SP entity ID
                - message_id: ID of the message built or parsed
                - in_response_to: ID of the request answered
                - binding: Binding used
                - error_message: Error details (if status is failure)
                - correlation_id: Optional ID linking related events

    Example:
        >>> log_audit_event(LOGIN_RESPONSE_CREATED, {
        ...     "status": "success",
        ...     "idp": "https://idp.example.org/metadata",
        ...     "sp": "https://sp.example.org/metadata",
        ...     "message_id": "_1f3c...",
        ... })
    """
    details = dict(details)
    details.setdefault("timestamp", time.time())
    details.setdefault("correlation_id", str(uuid.uuid4()))

    message_parts = [f"AUDIT [{event_type}]"]

    field_order = [
        "status",
        "idp",
        "sp",
        "binding",
        "message_id",
        "in_response_to",
        "error_type",
        "error_message",
        "correlation_id",
    ]

    for field in field_order:
        if field in details:
            message_parts.append(f"{field}={details[field]}")

    for key, value in details.items():
        if key not in field_order and key != "timestamp":
            message_parts.append(f"{key}={value}")

    audit_message = " | ".join(message_parts)

    if details.get("status") == "failure":
        logger.error(audit_message)
    else:
        logger.info(audit_message)
