"""SAML 2.0 identity provider message engine."""

__version__ = "0.1.0"

from saml_idp.entity import EntityMetadata, ServiceProvider
from saml_idp.identity_provider import IdentityProvider
from saml_idp.models.saml import (
    Binding,
    LoginResponseContext,
    SamlHttpRequest,
    SignatureOrdering,
)

__all__ = [
    "Binding",
    "EntityMetadata",
    "IdentityProvider",
    "LoginResponseContext",
    "SamlHttpRequest",
    "ServiceProvider",
    "SignatureOrdering",
]
