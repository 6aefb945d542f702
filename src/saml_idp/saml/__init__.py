"""SAML message engines: templates, XML signatures, encryption and parsing.

This module provides functionality for:
- Filling login response and request templates
- Signing and verifying enveloped XML signatures and redirect query signatures
- Encrypting and decrypting assertions
- Decoding, verifying and extracting inbound messages
"""

from saml_idp.saml.certificate_manager import (
    certificate_fingerprint,
    check_expiration_warning,
    get_certificate_info,
    load_certificate_bundle,
    load_pem_certificate,
    load_pem_private_key,
)
from saml_idp.saml.encryption import AssertionEncryptor
from saml_idp.saml.parser import GenericParser
from saml_idp.saml.response_builder import LoginResponseBuilder, generate_saml_timestamps
from saml_idp.saml.signer import SAMLSigner
from saml_idp.saml.templates import (
    build_attribute_statement,
    extract_placeholders,
    replace_tags_by_value,
    validate_template_tags,
)
from saml_idp.saml.verifier import SAMLVerifier
from saml_idp.saml.xml_utils import canonicalize

__all__ = [
    "AssertionEncryptor",
    "build_attribute_statement",
    "canonicalize",
    "certificate_fingerprint",
    "check_expiration_warning",
    "extract_placeholders",
    "generate_saml_timestamps",
    "GenericParser",
    "get_certificate_info",
    "load_certificate_bundle",
    "load_pem_certificate",
    "load_pem_private_key",
    "LoginResponseBuilder",
    "replace_tags_by_value",
    "SAMLSigner",
    "SAMLVerifier",
    "validate_template_tags",
]
