"""XML signing module for SAML protocol messages and assertions.

This module produces enveloped W3C XML Signatures (XMLDSig) over SAML
elements using the signxml library with exclusive C14N canonicalization.
The signature references the signed element by its ID attribute and is
placed directly after the element's Issuer, which is where the SAML 2.0
schema requires it. Detached redirect-binding signatures are computed with
cryptography over the query octet string.
"""

import base64
import logging
from typing import Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from lxml import etree
from signxml import CanonicalizationMethod, DigestAlgorithm, SignatureMethod, XMLSigner, methods
from signxml.exceptions import InvalidInput

from ..models.saml import CertificateBundle
from ..utils.exceptions import CertificateLoadError, MalformedXmlError
from .xml_utils import DS_NS, SAML_NS, ds_tag, find_by_id, parse_xml, to_string

logger = logging.getLogger(__name__)

RSA_SHA1 = "http://www.w3.org/2000/09/xmldsig#rsa-sha1"
RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
RSA_SHA512 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512"

DIGEST_SHA1 = "http://www.w3.org/2000/09/xmldsig#sha1"
DIGEST_SHA256 = "http://www.w3.org/2001/04/xmlenc#sha256"
DIGEST_SHA512 = "http://www.w3.org/2001/04/xmlenc#sha512"

# Signature method URI -> (hash used by the RSA signature, digest method URI)
SIGNATURE_ALGORITHMS = {
    RSA_SHA1: (hashes.SHA1, DIGEST_SHA1),
    RSA_SHA256: (hashes.SHA256, DIGEST_SHA256),
    RSA_SHA512: (hashes.SHA512, DIGEST_SHA512),
}

DIGEST_ALGORITHMS = frozenset(digest for _, digest in SIGNATURE_ALGORITHMS.values())

DEFAULT_SIGNATURE_ALGORITHM = RSA_SHA256


class _EnvelopedSigner(XMLSigner):
    """XMLSigner that also accepts RSA-SHA1 when an entity is configured for it."""

    def check_deprecated_methods(self):
        pass


class SAMLSigner:
    """Sign SAML elements with enveloped XML digital signatures.

    Attributes:
        private_key: RSA private key used to compute SignatureValue
        certificate: Certificate embedded in KeyInfo
        signature_algorithm: SignatureMethod URI (default RSA-SHA256)
        digest_algorithm: DigestMethod URI matching the signature algorithm
        signer: signxml XMLSigner configured for enveloped exc-c14n signatures

    Example:
        >>> bundle = load_certificate_bundle(cert_pem, key_pem)
        >>> signer = SAMLSigner.from_bundle(bundle)
        >>> signed_xml = signer.sign(response_xml)
        >>> assert "<ds:Signature" in signed_xml
    """

    def __init__(
        self,
        private_key: rsa.RSAPrivateKey,
        certificate: x509.Certificate,
        signature_algorithm: str = DEFAULT_SIGNATURE_ALGORITHM,
    ) -> None:
        """Initialize signer with key material.

        Raises:
            CertificateLoadError: If key or certificate is missing
            ValueError: If the signature algorithm is unsupported
        """
        if certificate is None:
            raise CertificateLoadError(
                "A signing certificate is required. "
                "Configure signing_cert for this entity."
            )

        if private_key is None:
            raise CertificateLoadError(
                "A private key is required for signing. "
                "Configure private_key for this entity."
            )

        if signature_algorithm not in SIGNATURE_ALGORITHMS:
            raise ValueError(
                f"Unsupported signature algorithm: {signature_algorithm}. "
                f"Supported algorithms: {', '.join(SIGNATURE_ALGORITHMS)}"
            )

        self.private_key = private_key
        self.certificate = certificate
        self.signature_algorithm = signature_algorithm
        self.digest_algorithm = SIGNATURE_ALGORITHMS[signature_algorithm][1]

        self._key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        self._cert_pem = certificate.public_bytes(serialization.Encoding.PEM)

        self.signer = _EnvelopedSigner(
            method=methods.enveloped,
            signature_algorithm=SignatureMethod(signature_algorithm),
            digest_algorithm=DigestAlgorithm(self.digest_algorithm),
            c14n_algorithm=CanonicalizationMethod.EXCLUSIVE_XML_CANONICALIZATION_1_0,
        )

    @classmethod
    def from_bundle(
        cls,
        bundle: CertificateBundle,
        signature_algorithm: str = DEFAULT_SIGNATURE_ALGORITHM,
    ) -> "SAMLSigner":
        return cls(bundle.private_key, bundle.certificate, signature_algorithm)

    def sign(self, xml: Union[str, bytes], reference_id: Optional[str] = None) -> str:
        """Sign one element of an XML document.

        Args:
            xml: Document to sign
            reference_id: ID of the element to sign (defaults to the root)

        Returns:
            Serialized document with the signature embedded

        Raises:
            MalformedXmlError: If the document is malformed or the ID does
                not resolve to exactly one element
        """
        root = parse_xml(xml)

        if reference_id is None:
            target = root
        else:
            matches = find_by_id(root, reference_id)
            if len(matches) != 1:
                raise MalformedXmlError(
                    f"Reference ID {reference_id!r} must match exactly one element, "
                    f"found {len(matches)}"
                )
            target = matches[0]

        self.sign_element(target)
        return to_string(root)

    def sign_element(self, element: etree._Element) -> etree._Element:
        """Embed an enveloped signature into element, in place.

        signxml signs a standalone copy of the element with a placeholder
        Signature after its Issuer; the finished Signature is then moved into
        the original element at the same position. Exclusive C14N makes the
        digest independent of the surrounding document.

        Args:
            element: Element carrying an ID attribute

        Returns:
            The same element, now signed

        Raises:
            MalformedXmlError: If the element has no ID attribute
            CertificateLoadError: If signxml rejects the key material
        """
        reference_id = element.get("ID")
        if not reference_id:
            raise MalformedXmlError(
                f"Cannot sign <{etree.QName(element).localname}>: missing ID attribute"
            )

        position = _signature_position(element)
        standalone = parse_xml(to_string(element))
        standalone.insert(
            position,
            etree.Element(ds_tag("Signature"), nsmap={"ds": DS_NS}, Id="placeholder"),
        )

        try:
            signed = self.signer.sign(standalone, key=self._key_pem, cert=self._cert_pem)
        except InvalidInput as e:
            logger.error(f"Invalid certificate or private key: {e}")
            raise CertificateLoadError(
                f"Invalid certificate or private key: {e}. "
                f"Check the private_key and signing_cert of this entity."
            ) from e

        signature = signed.find(ds_tag("Signature"))
        if signature is None:
            raise MalformedXmlError(
                f"signxml produced no Signature for <{etree.QName(element).localname}>"
            )
        signature.tail = None
        element.insert(position, signature)

        logger.debug(
            f"Signed <{etree.QName(element).localname} ID={reference_id}> "
            f"with {self.signature_algorithm}"
        )
        return element

    def sign_redirect_query(self, octet_string: str) -> str:
        """Sign the redirect binding octet string.

        Args:
            octet_string: "SAMLRequest=...&RelayState=...&SigAlg=..." as sent

        Returns:
            Base64 signature value for the Signature query parameter
        """
        hash_cls = SIGNATURE_ALGORITHMS[self.signature_algorithm][0]
        raw = self.private_key.sign(octet_string.encode("utf-8"), padding.PKCS1v15(), hash_cls())
        return base64.b64encode(raw).decode("ascii")


def _signature_position(element: etree._Element) -> int:
    """Index right after a leading saml:Issuer child, else 0."""
    for index, child in enumerate(element):
        if not isinstance(child.tag, str):
            continue
        if child.tag == f"{{{SAML_NS}}}Issuer":
            return index + 1
        return 0
    return 0
