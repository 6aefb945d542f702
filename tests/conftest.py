"""
Shared pytest configuration and fixtures.

Key material is generated once per session with the cryptography library;
no certificates or keys are checked in.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from saml_idp.saml.templates import LOGIN_REQUEST_TEMPLATE, replace_tags_by_value

IDP_ENTITY_ID = "https://idp.example.org/metadata"
SP_ENTITY_ID = "https://sp.example.org/metadata"
SP_ACS_URL = "https://sp.example.org/acs"
IDP_SSO_URL = "https://idp.example.org/sso"


class KeyPair(NamedTuple):
    """Generated RSA key and self-signed certificate, as objects and PEM text."""

    key: rsa.RSAPrivateKey
    cert: x509.Certificate
    key_pem: str
    cert_pem: str


def generate_key_pair(common_name: str, days: int = 365) -> KeyPair:
    """Generate an RSA key with a self-signed certificate."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "TestOrg"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])

    now = datetime.now(timezone.utc)
    cert = x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        issuer
    ).public_key(
        private_key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        now - timedelta(minutes=1)
    ).not_valid_after(
        now + timedelta(days=days)
    ).add_extension(
        x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
        critical=False,
    ).sign(private_key, hashes.SHA256())

    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    return KeyPair(private_key, cert, key_pem, cert_pem)


@pytest.fixture(scope="session")
def key_pair_factory() -> Callable[..., KeyPair]:
    """Generator for extra key pairs (custom lifetimes, extra peers)."""
    return generate_key_pair


@pytest.fixture(scope="session")
def idp_keys() -> KeyPair:
    return generate_key_pair("Test IdP")


@pytest.fixture(scope="session")
def sp_keys() -> KeyPair:
    return generate_key_pair("Test SP")


@pytest.fixture(scope="session")
def sp_encrypt_keys() -> KeyPair:
    return generate_key_pair("Test SP Encryption")


@pytest.fixture(scope="session")
def rogue_keys() -> KeyPair:
    """Key pair nobody trusts."""
    return generate_key_pair("Rogue Signer")


@pytest.fixture
def idp_settings(idp_keys: KeyPair) -> dict:
    return {
        "entity_id": IDP_ENTITY_ID,
        "private_key": idp_keys.key_pem,
        "signing_cert": idp_keys.cert_pem,
        "single_sign_on_service": [
            {"binding": "redirect", "location": IDP_SSO_URL},
            {"binding": "post", "location": IDP_SSO_URL},
        ],
    }


@pytest.fixture
def sp_settings(sp_keys: KeyPair, sp_encrypt_keys: KeyPair) -> dict:
    return {
        "entity_id": SP_ENTITY_ID,
        "private_key": sp_keys.key_pem,
        "signing_cert": sp_keys.cert_pem,
        "encrypt_cert": sp_encrypt_keys.cert_pem,
        "encrypt_private_key": sp_encrypt_keys.key_pem,
        "name_id_format": ["urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"],
        "assertion_consumer_service": [
            {"binding": "post", "location": SP_ACS_URL, "is_default": True},
            {"binding": "redirect", "location": "https://sp.example.org/acs-redirect"},
        ],
    }


@pytest.fixture
def make_authn_request() -> Callable[..., str]:
    """Factory for AuthnRequest XML built from the default request template."""

    def _make(
        request_id: str = "_req123",
        issuer: str = SP_ENTITY_ID,
        name_id_format: str = "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
        authn_context: str = "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport",
    ) -> str:
        return replace_tags_by_value(LOGIN_REQUEST_TEMPLATE, {
            "ID": request_id,
            "IssueInstant": "2024-01-01T00:00:00Z",
            "Destination": IDP_SSO_URL,
            "ProtocolBinding": "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST",
            "AssertionConsumerServiceURL": SP_ACS_URL,
            "Issuer": issuer,
            "NameIDFormat": name_id_format,
            "AllowCreate": "true",
            "AuthnContextClassRef": authn_context,
        })

    return _make
