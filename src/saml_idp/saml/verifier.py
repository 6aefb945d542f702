"""XML signature verification for SAML messages.

This module verifies enveloped XML signatures with the signxml library
against a trusted peer certificate (or SHA-256 fingerprint) and verifies
detached redirect-binding query signatures with cryptography. Verification
is strict: a signature is accepted only when its single reference resolves
to exactly one element, the signature is a direct child of that element,
and the embedded certificate (if any) is the trusted one.
"""

import base64
import binascii
import logging
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature as InvalidRSASignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from lxml import etree
from signxml import DigestAlgorithm, SignatureConfiguration, SignatureMethod, XMLVerifier
from signxml.exceptions import InvalidDigest, InvalidInput, InvalidSignature

from ..utils.exceptions import (
    CertificateLoadError,
    ConfigurationError,
    SignatureVerificationError,
)
from .certificate_manager import (
    certificate_fingerprint,
    certificates_equal,
    fingerprints_match,
    load_certificate_from_base64,
)
from .signer import DIGEST_ALGORITHMS, SIGNATURE_ALGORITHMS
from .xml_utils import (
    ENVELOPED_SIGNATURE,
    EXC_C14N,
    EXC_C14N_WITH_COMMENTS,
    ds_tag,
    find_by_id,
    parse_xml,
    to_string,
)

logger = logging.getLogger(__name__)

_ALLOWED_C14N = {EXC_C14N, EXC_C14N_WITH_COMMENTS}
_ALLOWED_TRANSFORMS = {ENVELOPED_SIGNATURE, EXC_C14N, EXC_C14N_WITH_COMMENTS}

EXPECTED_SIGNATURE = SignatureConfiguration(
    expect_references=1,
    signature_methods=frozenset(SignatureMethod(uri) for uri in SIGNATURE_ALGORITHMS),
    digest_algorithms=frozenset(DigestAlgorithm(uri) for uri in DIGEST_ALGORITHMS),
)


class SAMLVerifier:
    """Verify XML signatures on SAML messages against a trust anchor.

    Attributes:
        trusted_cert: Certificate the signer must hold
        trusted_fingerprint: SHA-256 fingerprint of the signer certificate,
            used when no certificate is pinned

    Example:
        >>> verifier = SAMLVerifier(trusted_cert=sp_cert)
        >>> verifier.verify(authn_request_xml)
        True
    """

    def __init__(
        self,
        trusted_cert: Optional[x509.Certificate] = None,
        trusted_fingerprint: Optional[str] = None,
    ) -> None:
        if trusted_cert is None and not trusted_fingerprint:
            raise ConfigurationError(
                "Signature verification needs a trusted certificate or fingerprint. "
                "Configure signing_cert or signing_cert_fingerprint for the peer."
            )
        self.trusted_cert = trusted_cert
        self.trusted_fingerprint = trusted_fingerprint

    def verify(
        self,
        xml: Union[str, bytes, etree._Element],
        expected_id: Optional[str] = None,
    ) -> bool:
        """Verify the enveloped signature of one element.

        The target and its signature are located in a private parse of the
        document; signxml then verifies that element on its own, and its
        result must name the same element and the same signature.

        Args:
            xml: Signed document, or any element of it
            expected_id: ID of the element expected to be signed (defaults
                to the document root)

        Returns:
            True when the signature is valid

        Raises:
            SignatureVerificationError: On any verification failure
        """
        if isinstance(xml, etree._Element):
            xml = etree.tostring(xml.getroottree())
        root = parse_xml(xml)

        if expected_id is None:
            expected_id = root.get("ID")
            if not expected_id:
                raise SignatureVerificationError("Signed root element has no ID attribute")

        targets = find_by_id(root, expected_id)
        if len(targets) != 1:
            raise SignatureVerificationError(
                f"ID {expected_id!r} must resolve to exactly one element, "
                f"found {len(targets)}"
            )
        target = targets[0]

        signatures = [child for child in target if child.tag == ds_tag("Signature")]
        if not signatures:
            raise SignatureVerificationError(
                f"No Signature found on element with ID {expected_id!r}"
            )
        if len(signatures) > 1:
            raise SignatureVerificationError(
                f"Multiple Signatures found on element with ID {expected_id!r}"
            )
        signature = signatures[0]

        self._check_signed_info(signature, target, expected_id)
        signature_value = signature.findtext(ds_tag("SignatureValue"), default="")
        _b64decode(signature_value)

        trusted = self._resolve_certificate(signature)

        try:
            result = XMLVerifier().verify(
                to_string(target).encode("utf-8"),
                x509_cert=trusted.public_bytes(serialization.Encoding.PEM),
                id_attribute="ID",
                expect_config=EXPECTED_SIGNATURE,
            )
        except InvalidDigest as e:
            logger.warning(f"Digest mismatch for element {expected_id!r}")
            raise SignatureVerificationError(
                f"Digest mismatch for element {expected_id!r}: "
                f"content has been modified after signing"
            ) from e
        except InvalidSignature as e:
            logger.warning("Signature value does not verify with the trusted key")
            raise SignatureVerificationError(
                "Signature verification failed: message may be tampered "
                "or signed with a different key"
            ) from e
        except InvalidInput as e:
            raise SignatureVerificationError(f"Signature rejected: {e}") from e

        verified_value = result.signature_xml.findtext(ds_tag("SignatureValue"), default="")
        if (
            result.signed_xml.get("ID") != expected_id
            or "".join(verified_value.split()) != "".join(signature_value.split())
        ):
            raise SignatureVerificationError(
                f"Verified signature does not cover element {expected_id!r}"
            )

        logger.debug(f"Signature verified for element {expected_id!r}")
        return True

    def verify_redirect_query(self, octet_string: str, signature: str, sig_alg: str) -> bool:
        """Verify a detached HTTP-Redirect signature.

        Args:
            octet_string: Signed query portion, exactly as sent
            signature: Base64 Signature query parameter
            sig_alg: SigAlg query parameter

        Returns:
            True when the signature is valid

        Raises:
            SignatureVerificationError: On any verification failure
        """
        if sig_alg not in SIGNATURE_ALGORITHMS:
            raise SignatureVerificationError(f"Unsupported SigAlg: {sig_alg}")

        if self.trusted_cert is None:
            raise SignatureVerificationError(
                "Redirect binding signatures carry no certificate; "
                "a pinned signing certificate is required for the peer"
            )

        public_key = self.trusted_cert.public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise SignatureVerificationError("Only RSA signing keys are supported")

        hash_cls = SIGNATURE_ALGORITHMS[sig_alg][0]
        try:
            public_key.verify(
                _b64decode(signature),
                octet_string.encode("utf-8"),
                padding.PKCS1v15(),
                hash_cls(),
            )
        except InvalidRSASignature as e:
            logger.warning("Redirect query signature does not verify with the trusted key")
            raise SignatureVerificationError(
                "Signature verification failed: message may be tampered "
                "or signed with a different key"
            ) from e

        logger.debug("Redirect query signature verified")
        return True

    @staticmethod
    def _check_signed_info(
        signature: etree._Element, target: etree._Element, expected_id: str
    ) -> None:
        """Reject references and algorithms outside the SAML profile."""
        signed_info = signature.find(ds_tag("SignedInfo"))
        if signed_info is None:
            raise SignatureVerificationError("Signature has no SignedInfo")

        c14n_method = _algorithm(signed_info, "CanonicalizationMethod")
        if c14n_method not in _ALLOWED_C14N:
            raise SignatureVerificationError(
                f"Unsupported canonicalization method: {c14n_method}"
            )

        signature_method = _algorithm(signed_info, "SignatureMethod")
        if signature_method not in SIGNATURE_ALGORITHMS:
            raise SignatureVerificationError(
                f"Unsupported signature method: {signature_method}"
            )

        references = signed_info.findall(ds_tag("Reference"))
        if len(references) != 1:
            raise SignatureVerificationError(
                f"Signature must carry exactly one Reference, found {len(references)}"
            )
        reference = references[0]

        uri = reference.get("URI")
        if uri != f"#{expected_id}" and not (uri == "" and target.getparent() is None):
            raise SignatureVerificationError(
                f"Signature reference {uri!r} does not point at ID {expected_id!r}"
            )

        transforms = [
            t.get("Algorithm")
            for t in reference.iterfind(f"{ds_tag('Transforms')}/{ds_tag('Transform')}")
        ]
        unsupported = [t for t in transforms if t not in _ALLOWED_TRANSFORMS]
        if unsupported or ENVELOPED_SIGNATURE not in transforms:
            raise SignatureVerificationError(
                f"Unsupported reference transforms: {transforms}"
            )

        digest_method = _algorithm(reference, "DigestMethod")
        if digest_method not in DIGEST_ALGORITHMS:
            raise SignatureVerificationError(f"Unsupported digest method: {digest_method}")

    def _resolve_certificate(self, signature: etree._Element) -> x509.Certificate:
        """Pick the verification certificate and enforce the trust anchor."""
        embedded = []
        for cert_element in signature.iter(ds_tag("X509Certificate")):
            try:
                embedded.append(load_certificate_from_base64(cert_element.text or ""))
            except CertificateLoadError as e:
                raise SignatureVerificationError(str(e)) from e

        if self.trusted_cert is not None:
            for cert in embedded:
                if not certificates_equal(cert, self.trusted_cert):
                    raise SignatureVerificationError(
                        "Signing certificate does not match the trusted certificate"
                    )
            trusted = self.trusted_cert
        else:
            if not embedded:
                raise SignatureVerificationError(
                    "Signature carries no certificate to match the trusted fingerprint"
                )
            if not all(
                fingerprints_match(self.trusted_fingerprint, certificate_fingerprint(cert))
                for cert in embedded
            ):
                raise SignatureVerificationError(
                    "Signing certificate does not match the trusted fingerprint"
                )
            trusted = embedded[0]

        if not isinstance(trusted.public_key(), rsa.RSAPublicKey):
            raise SignatureVerificationError("Only RSA signing keys are supported")
        return trusted


def _algorithm(parent: etree._Element, local_name: str) -> Optional[str]:
    element = parent.find(ds_tag(local_name))
    return None if element is None else element.get("Algorithm")


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureVerificationError(f"Signature value is not valid base64: {e}") from e
