"""Default entity settings.

These dictionaries are merged under caller-supplied settings by
build_entity_settings.
"""

from typing import Any

DEFAULT_IDP_SETTINGS: dict[str, Any] = {
    # Unsigned AuthnRequests are accepted unless the deployment opts in
    "want_authn_requests_signed": False,
    "want_logout_request_signed": False,
    "is_assertion_encrypted": False,
    "tag_prefix": {
        "encrypted_assertion": "saml",
    },
}

DEFAULT_SP_SETTINGS: dict[str, Any] = {
    "want_assertions_signed": True,
    "want_message_signed": False,
    "want_logout_response_signed": False,
}
