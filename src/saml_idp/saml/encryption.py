"""XML Encryption of SAML assertions.

This module encrypts an assertion subtree into a saml:EncryptedAssertion
element with the xmlsec library (W3C XML Encryption): the assertion is
encrypted with a random AES session key, and that key is wrapped with the
recipient's RSA certificate in an inline xenc:EncryptedKey. Decryption
returns the serialized assertion that was encrypted.
"""

import logging
from typing import Union

import xmlsec
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from lxml import etree

from ..utils.exceptions import DecryptionError, EncryptionError, MalformedXmlError
from .xml_utils import SAML_NS, ds_tag, parse_xml, to_string, xenc_tag

logger = logging.getLogger(__name__)

AES128_CBC = "http://www.w3.org/2001/04/xmlenc#aes128-cbc"
AES256_CBC = "http://www.w3.org/2001/04/xmlenc#aes256-cbc"
AES128_GCM = "http://www.w3.org/2009/xmlenc11#aes128-gcm"
AES256_GCM = "http://www.w3.org/2009/xmlenc11#aes256-gcm"

RSA_OAEP_MGF1P = "http://www.w3.org/2001/04/xmlenc#rsa-oaep-mgf1p"
RSA_1_5 = "http://www.w3.org/2001/04/xmlenc#rsa-1_5"

OAEP_DIGEST_SHA1 = "http://www.w3.org/2000/09/xmldsig#sha1"

# Data encryption URI -> (xmlsec transform, session key size in bits)
DATA_ALGORITHMS = {
    AES128_CBC: (xmlsec.constants.TransformAes128Cbc, 128),
    AES256_CBC: (xmlsec.constants.TransformAes256Cbc, 256),
    AES128_GCM: (xmlsec.constants.TransformAes128Gcm, 128),
    AES256_GCM: (xmlsec.constants.TransformAes256Gcm, 256),
}

KEY_ALGORITHMS = {
    RSA_OAEP_MGF1P: xmlsec.constants.TransformRsaOaep,
    RSA_1_5: xmlsec.constants.TransformRsaPkcs1,
}

DEFAULT_DATA_ALGORITHM = AES256_CBC
DEFAULT_KEY_ALGORITHM = RSA_OAEP_MGF1P


class AssertionEncryptor:
    """Encrypt and decrypt SAML assertions.

    Attributes:
        data_algorithm: Block cipher URI for the assertion content
        key_algorithm: Key transport URI for the AES key
        prefix: Namespace prefix of the EncryptedAssertion wrapper

    Example:
        >>> encryptor = AssertionEncryptor()
        >>> encrypted = encryptor.encrypt(assertion_xml, sp_encrypt_cert)
        >>> encryptor.decrypt(encrypted, sp_private_key) == assertion_xml
        True
    """

    def __init__(
        self,
        data_algorithm: str = DEFAULT_DATA_ALGORITHM,
        key_algorithm: str = DEFAULT_KEY_ALGORITHM,
        prefix: str = "saml",
    ) -> None:
        if data_algorithm not in DATA_ALGORITHMS:
            raise ValueError(
                f"Unsupported data encryption algorithm: {data_algorithm}. "
                f"Supported algorithms: {', '.join(DATA_ALGORITHMS)}"
            )
        if key_algorithm not in KEY_ALGORITHMS:
            raise ValueError(
                f"Unsupported key encryption algorithm: {key_algorithm}. "
                f"Supported algorithms: {', '.join(KEY_ALGORITHMS)}"
            )
        self.data_algorithm = data_algorithm
        self.key_algorithm = key_algorithm
        self.prefix = prefix

    def encrypt(
        self,
        assertion: Union[str, bytes, etree._Element],
        recipient_cert: x509.Certificate,
    ) -> str:
        """Encrypt an assertion for the holder of recipient_cert.

        Args:
            assertion: Serialized assertion or assertion element
            recipient_cert: Recipient encryption certificate (RSA)

        Returns:
            Serialized saml:EncryptedAssertion element

        Raises:
            EncryptionError: If encryption fails
        """
        return to_string(self.build_encrypted_assertion(assertion, recipient_cert))

    def encrypt_in_place(
        self, assertion: etree._Element, recipient_cert: x509.Certificate
    ) -> etree._Element:
        """Replace an assertion element with its EncryptedAssertion in the tree."""
        parent = assertion.getparent()
        if parent is None:
            raise EncryptionError("Assertion must be attached to a parent element")

        encrypted = self.build_encrypted_assertion(assertion, recipient_cert)
        encrypted.tail = assertion.tail
        parent.replace(assertion, encrypted)
        return encrypted

    def build_encrypted_assertion(
        self,
        assertion: Union[str, bytes, etree._Element],
        recipient_cert: x509.Certificate,
    ) -> etree._Element:
        if isinstance(assertion, etree._Element):
            assertion = to_string(assertion)
        try:
            plaintext = parse_xml(assertion)
        except MalformedXmlError as e:
            raise EncryptionError(f"Assertion is not well-formed: {e}") from e

        if not isinstance(recipient_cert.public_key(), rsa.RSAPublicKey):
            raise EncryptionError(
                f"Recipient certificate {recipient_cert.subject.rfc4514_string()} "
                f"does not hold an RSA key"
            )

        wrapper = etree.Element(
            f"{{{SAML_NS}}}EncryptedAssertion", nsmap={self.prefix: SAML_NS}
        )
        wrapper.append(plaintext)

        data_transform, key_bits = DATA_ALGORITHMS[self.data_algorithm]
        template = xmlsec.template.encrypted_data_create(
            wrapper, data_transform, type=xmlsec.constants.TypeEncElement, ns="xenc"
        )
        xmlsec.template.encrypted_data_ensure_cipher_value(template)
        key_info = xmlsec.template.encrypted_data_ensure_key_info(template, ns="ds")
        encrypted_key = xmlsec.template.add_encrypted_key(
            key_info, KEY_ALGORITHMS[self.key_algorithm]
        )
        if self.key_algorithm == RSA_OAEP_MGF1P:
            key_method = encrypted_key.find(xenc_tag("EncryptionMethod"))
            etree.SubElement(key_method, ds_tag("DigestMethod"), Algorithm=OAEP_DIGEST_SHA1)
        xmlsec.template.encrypted_data_ensure_cipher_value(encrypted_key)

        cert_pem = recipient_cert.public_bytes(serialization.Encoding.PEM)
        try:
            manager = xmlsec.KeysManager()
            manager.add_key(
                xmlsec.Key.from_memory(cert_pem, xmlsec.constants.KeyDataFormatCertPem, None)
            )
            ctx = xmlsec.EncryptionContext(manager)
            ctx.key = xmlsec.Key.generate(
                xmlsec.constants.KeyDataAes, key_bits, xmlsec.constants.KeyDataTypeSession
            )
            ctx.encrypt_xml(template, plaintext)
        except xmlsec.Error as e:
            logger.error(f"Assertion encryption failed: {e}")
            raise EncryptionError(f"Assertion encryption failed: {e}") from e

        logger.debug(
            f"Encrypted assertion with {self.data_algorithm} "
            f"for {recipient_cert.subject.rfc4514_string()}"
        )
        return wrapper

    def decrypt(
        self,
        encrypted: Union[str, bytes, etree._Element],
        private_key: rsa.RSAPrivateKey,
    ) -> str:
        """Decrypt an EncryptedAssertion (or bare EncryptedData).

        The input is copied into a private tree, so a caller's tree is never
        modified.

        Args:
            encrypted: Serialized or parsed encrypted element
            private_key: Recipient private key

        Returns:
            The serialized assertion that was encrypted

        Raises:
            DecryptionError: If the key does not match, the algorithm is
                unsupported or the cipher data is corrupted
        """
        if isinstance(encrypted, etree._Element):
            encrypted = to_string(encrypted)
        try:
            root = parse_xml(encrypted)
        except MalformedXmlError as e:
            raise DecryptionError(f"Encrypted assertion is not well-formed: {e}") from e

        encrypted_data = (
            root if root.tag == xenc_tag("EncryptedData")
            else next(root.iter(xenc_tag("EncryptedData")), None)
        )
        if encrypted_data is None:
            raise DecryptionError("No EncryptedData element found")

        data_algorithm = _method(encrypted_data)
        if data_algorithm not in DATA_ALGORITHMS:
            raise DecryptionError(f"Unsupported data encryption algorithm: {data_algorithm}")

        encrypted_key = next(encrypted_data.iter(xenc_tag("EncryptedKey")), None)
        if encrypted_key is None:
            raise DecryptionError("No EncryptedKey element found")

        key_algorithm = _method(encrypted_key)
        if key_algorithm not in KEY_ALGORITHMS:
            raise DecryptionError(f"Unsupported key encryption algorithm: {key_algorithm}")

        if encrypted_data.getparent() is None:
            holder = etree.Element(f"{{{SAML_NS}}}EncryptedAssertion")
            holder.append(encrypted_data)

        key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        try:
            manager = xmlsec.KeysManager()
            manager.add_key(xmlsec.Key.from_memory(key_pem, xmlsec.constants.KeyDataFormatPem, None))
            decrypted = xmlsec.EncryptionContext(manager).decrypt(encrypted_data)
        except xmlsec.Error as e:
            logger.warning(f"Assertion decryption failed with {data_algorithm}")
            raise DecryptionError(
                "Cannot decrypt the assertion: the private key does not match the "
                "encryption certificate or the cipher data is corrupted"
            ) from e

        if not isinstance(decrypted, etree._Element):
            raise DecryptionError("EncryptedData did not contain an XML element")
        return to_string(decrypted)


def _method(element: etree._Element) -> str:
    method = element.find(xenc_tag("EncryptionMethod"))
    return "" if method is None else method.get("Algorithm", "")
