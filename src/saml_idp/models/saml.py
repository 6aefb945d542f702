"""Data models for SAML messages, bindings and certificate handling.

This module defines the dataclasses and enums passed between the binding
codecs, the signature and encryption engines, the generic parser and the
IdentityProvider orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Union

from cryptography import x509

from ..utils.exceptions import UnsupportedBindingError


class Binding(Enum):
    """SAML 2.0 protocol bindings.

    Artifact is declared so it can be named and rejected explicitly, but no
    code path ever executes it.

    Attributes:
        REDIRECT: HTTP-Redirect (deflated query parameter)
        POST: HTTP-POST (base64 form field)
        ARTIFACT: HTTP-Artifact (unsupported)
    """

    REDIRECT = "redirect"
    POST = "post"
    ARTIFACT = "artifact"

    @property
    def urn(self) -> str:
        """Binding URN as used in metadata endpoint declarations."""
        return _BINDING_URNS[self]

    @classmethod
    def resolve(cls, value: Union["Binding", str]) -> "Binding":
        """Resolve a member, short name or binding URN to a Binding.

        Args:
            value: Binding member, short name ("post") or URN

        Returns:
            Matching Binding member

        Raises:
            UnsupportedBindingError: If value names no known binding

        Example:
            >>> Binding.resolve("urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST")
            <Binding.POST: 'post'>
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member, urn in _BINDING_URNS.items():
                if value == member.value or value == urn:
                    return member
        raise UnsupportedBindingError(
            f"Unknown binding: {value!r}. "
            f"Must be one of: {', '.join(m.value for m in cls)}"
        )


_BINDING_URNS = {
    Binding.REDIRECT: "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect",
    Binding.POST: "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST",
    Binding.ARTIFACT: "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Artifact",
}


class SignatureOrdering(Enum):
    """Order in which integrity and confidentiality are applied to an assertion.

    Attributes:
        SIGN_THEN_ENCRYPT: Sign the assertion, then encrypt the signed assertion
        ENCRYPT_THEN_SIGN: Encrypt the assertion, then sign the enclosing Response
    """

    SIGN_THEN_ENCRYPT = "sign-then-encrypt"
    ENCRYPT_THEN_SIGN = "encrypt-then-sign"


@dataclass(frozen=True)
class CertificateInfo:
    """Certificate information for display and logging.

    Contains extracted metadata from X.509 certificates without
    exposing sensitive key material.

    Attributes:
        subject: Certificate subject Distinguished Name (DN)
        issuer: Certificate issuer Distinguished Name (DN)
        not_before: Certificate validity start date
        not_after: Certificate expiration date
        serial_number: Certificate serial number
        fingerprint: SHA-256 fingerprint, lowercase hex without separators
        key_size: Public key size in bits (e.g., 2048, 4096)
    """

    subject: str
    issuer: str
    not_before: datetime
    not_after: datetime
    serial_number: int
    fingerprint: str
    key_size: Optional[int]


@dataclass(frozen=True)
class CertificateBundle:
    """Certificate with its optional private key and extracted metadata.

    Attributes:
        certificate: X.509 certificate
        private_key: RSA private key (None for peer certificates)
        info: Extracted certificate information
    """

    certificate: x509.Certificate
    private_key: Optional[Any]
    info: CertificateInfo


@dataclass(frozen=True)
class SamlMessage:
    """Summary of one SAML protocol message built during a call.

    Attributes:
        id: Message ID attribute
        issuer: Entity ID of the issuing entity
        destination: Destination URL
        issue_instant: IssueInstant timestamp (ISO 8601, UTC)
        in_response_to: ID of the request being answered, if any
        status_code: Top-level status code URN
        assertion_ids: IDs of the assertions carried by the message
    """

    id: str
    issuer: str
    destination: str
    issue_instant: str
    in_response_to: Optional[str] = None
    status_code: str = "urn:oasis:names:tc:SAML:2.0:status:Success"
    assertion_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class LoginResponseContext:
    """Transport payload returned by IdentityProvider.create_login_response.

    Attributes:
        id: Response ID
        context: Binding-encoded message (base64 for POST)
        entity_endpoint: SP assertion consumer service URL for the binding
        type: Form field name the payload travels in
        relay_state: RelayState to echo back to the SP, if any
        message: Summary of the built response
    """

    id: str
    context: str
    entity_endpoint: str
    type: str = "SAMLResponse"
    relay_state: Optional[str] = None
    message: Optional[SamlMessage] = None


@dataclass(frozen=True)
class ParserField:
    """One entry of a parser format.

    Attributes:
        local_name: Local name of the element to extract
        attributes: Attribute names to extract instead of the text content
        extract_entire_body: Return the serialized element instead of its text
        optional: Absent element yields None instead of failing the parse
        key: Result key (defaults to local_name)
    """

    local_name: str
    attributes: tuple[str, ...] = ()
    extract_entire_body: bool = False
    optional: bool = False
    key: Optional[str] = None

    @property
    def result_key(self) -> str:
        return self.key or self.local_name


@dataclass(frozen=True)
class ParserSpec:
    """Declaration of what the generic parser decodes, verifies and extracts.

    Attributes:
        parser_format: Element names or ParserField descriptors to extract
        from_entity: Peer entity whose certificate is the trust anchor
        check_signature: Whether a valid signature is mandatory
        parser_type: Transport parameter name (SAMLRequest or SAMLResponse)
        type: Message kind ("login" or "logout"), selects the root element
    """

    parser_format: Sequence[Union[str, ParserField]]
    from_entity: Any
    check_signature: bool
    parser_type: str = "SAMLRequest"
    type: str = "login"


@dataclass(frozen=True)
class SamlHttpRequest:
    """The slice of an inbound HTTP request the parser needs.

    Query values are expected already URL-decoded by the web framework.

    Attributes:
        query: Query string parameters (redirect binding)
        body: Form fields (POST binding)
        octet_string: Raw signed portion of the query string, if the caller
            has it (redirect binding signatures are computed over the raw
            encoded query). When omitted it is rebuilt from the decoded
            values with uppercase percent-escapes, so signatures from
            senders that encode differently (lowercase hex, for example)
            only verify when the raw octet string is passed.
    """

    query: Mapping[str, str] = field(default_factory=dict)
    body: Mapping[str, str] = field(default_factory=dict)
    octet_string: Optional[str] = None
