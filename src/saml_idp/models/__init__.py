"""Models module.

This module provides data models and dataclasses for the SAML message pipeline.
"""

from saml_idp.models.saml import (
    Binding,
    CertificateBundle,
    CertificateInfo,
    LoginResponseContext,
    ParserField,
    ParserSpec,
    SamlHttpRequest,
    SamlMessage,
    SignatureOrdering,
)

__all__ = [
    "Binding",
    "CertificateBundle",
    "CertificateInfo",
    "LoginResponseContext",
    "ParserField",
    "ParserSpec",
    "SamlHttpRequest",
    "SamlMessage",
    "SignatureOrdering",
]
