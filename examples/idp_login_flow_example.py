"""IdP Login Flow Example.

This example walks one SP-initiated login through the IdentityProvider:
the SP sends a signed AuthnRequest over the redirect binding, the IdP parses
and verifies it, then answers with a signed and encrypted login response
over the POST binding.

Key features demonstrated:
- Building IdentityProvider and ServiceProvider from settings dictionaries
- Parsing a signed redirect-binding AuthnRequest
- Creating a login response with attributes
- Sign-then-encrypt versus encrypt-then-sign ordering
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import parse_qs

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

# Add src to path for running as standalone script
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from saml_idp import IdentityProvider, SamlHttpRequest, ServiceProvider, SignatureOrdering
from saml_idp.bindings import PostBinding, RedirectBinding
from saml_idp.logging_audit import configure_logging
from saml_idp.saml.certificate_manager import load_certificate_bundle
from saml_idp.saml.signer import SAMLSigner
from saml_idp.saml.templates import LOGIN_REQUEST_TEMPLATE, replace_tags_by_value

IDP_ENTITY_ID = "https://idp.example.org/metadata"
SP_ENTITY_ID = "https://sp.example.org/metadata"


def make_key_pair(common_name: str) -> tuple[str, str]:
    """Generate a throwaway RSA key and self-signed certificate as PEM."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")
    return key_pem, cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def build_entities() -> tuple[IdentityProvider, ServiceProvider, str, str]:
    """Create the IdP and the SP peer; return the SP keys too."""
    idp_key, idp_cert = make_key_pair("Example IdP")
    sp_key, sp_cert = make_key_pair("Example SP")
    _, sp_encrypt_cert = make_key_pair("Example SP Encryption")

    idp = IdentityProvider({
        "entity_id": IDP_ENTITY_ID,
        "private_key": idp_key,
        "signing_cert": idp_cert,
        "want_authn_requests_signed": True,
        "is_assertion_encrypted": True,
        "single_sign_on_service": [
            {"binding": "redirect", "location": "https://idp.example.org/sso"},
        ],
    })

    sp = ServiceProvider({
        "entity_id": SP_ENTITY_ID,
        "signing_cert": sp_cert,
        "encrypt_cert": sp_encrypt_cert,
        "want_message_signed": True,
        "assertion_consumer_service": [
            {"binding": "post", "location": "https://sp.example.org/acs"},
        ],
    })
    return idp, sp, sp_key, sp_cert


def example_parse_signed_request(idp: IdentityProvider, sp: ServiceProvider, sp_key: str, sp_cert: str) -> dict:
    """Example 1: Parse a signed AuthnRequest sent over the redirect binding."""
    print("\n" + "=" * 70)
    print("Example 1: Parse a Signed Redirect AuthnRequest")
    print("=" * 70)

    # SP side: sign the request the way an SP would
    sp_signer = SAMLSigner.from_bundle(load_certificate_bundle(sp_cert, sp_key))
    authn_request = replace_tags_by_value(LOGIN_REQUEST_TEMPLATE, {
        "ID": "_example-request",
        "IssueInstant": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "Destination": "https://idp.example.org/sso",
        "ProtocolBinding": "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST",
        "AssertionConsumerServiceURL": "https://sp.example.org/acs",
        "Issuer": SP_ENTITY_ID,
        "NameIDFormat": "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress",
        "AllowCreate": "true",
        "AuthnContextClassRef": "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport",
    })
    query_string = RedirectBinding.build_query(authn_request, relay_state="/dashboard", signer=sp_signer)

    # What the web framework hands over after decoding the query string,
    # plus the raw signed octets so the sender's percent-encoding is kept
    query = {key: values[0] for key, values in parse_qs(query_string).items()}
    request = SamlHttpRequest(
        query=query,
        octet_string=RedirectBinding.octet_string_from_query(query_string),
    )
    parsed = idp.parse_login_request(sp, "redirect", request)

    print(f"\n✓ Request verified and parsed:")
    print(f"  • Issuer: {parsed['Issuer']}")
    print(f"  • Request ID: {parsed['AuthnRequest']['ID']}")
    print(f"  • NameIDPolicy: {parsed['NameIDPolicy']}")
    print(f"  • AuthnContextClassRef: {parsed['AuthnContextClassRef']}")
    return parsed


def example_create_response(idp: IdentityProvider, sp: ServiceProvider, parsed: dict) -> None:
    """Example 2: Answer the request with both protection orderings."""
    print("\n" + "=" * 70)
    print("Example 2: Create Login Responses")
    print("=" * 70)

    user = {
        "email": "alice@example.org",
        "attributes": [
            {"name": "mail", "value": "alice@example.org"},
            {"name": "groups", "values": ["staff", "admins"]},
        ],
    }

    for ordering in SignatureOrdering:
        payload = idp.create_login_response(
            sp, parsed, "post", user, ordering=ordering, relay_state="/dashboard"
        )
        xml = PostBinding.decode(payload.context)

        print(f"\n✓ {ordering.value}:")
        print(f"  • Response ID: {payload.id}")
        print(f"  • POST to: {payload.entity_endpoint} as {payload.type}")
        print(f"  • InResponseTo: {payload.message.in_response_to}")
        print(f"  • Encrypted assertion: {'EncryptedAssertion' in xml}")
        print(f"  • Payload size: {len(payload.context)} characters")


def main():
    """Run all examples."""
    configure_logging(level="INFO")

    idp, sp, sp_key, sp_cert = build_entities()
    parsed = example_parse_signed_request(idp, sp, sp_key, sp_cert)
    example_create_response(idp, sp, parsed)

    print("\n" + "=" * 70)
    print("Done")
    print("=" * 70)


if __name__ == "__main__":
    main()
