"""Certificate management module for loading and handling X.509 material.

This module provides functionality for loading certificates and private keys
from PEM text, bytes, files or bare base64 certificate bodies (the form used
inside SAML metadata and KeyInfo elements), computing fingerprints, and
checking that a private key belongs to its certificate.
"""

import base64
import binascii
import hmac
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..models.saml import CertificateBundle, CertificateInfo
from ..utils.exceptions import CertificateLoadError

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes, Path]

_PEM_CERT_HEADER = "-----BEGIN CERTIFICATE-----"
_WHITESPACE = re.compile(r"\s+")


def _read_material(value: KeyMaterial) -> bytes:
    """Return raw bytes for PEM text, bytes or a file path."""
    if isinstance(value, Path):
        try:
            return value.read_bytes()
        except OSError as e:
            raise CertificateLoadError(
                f"Cannot read key material from {value}: {e}. "
                f"Ensure the file exists and is readable."
            ) from e
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def normalize_pem_certificate(value: KeyMaterial) -> bytes:
    """Return PEM bytes for a PEM certificate or a bare base64 DER body.

    Args:
        value: PEM text/bytes/path, or the base64 body found in metadata

    Returns:
        PEM-encoded certificate bytes
    """
    data = _read_material(value).strip()
    if data.startswith(_PEM_CERT_HEADER.encode("ascii")):
        return data
    body = _WHITESPACE.sub("", data.decode("ascii", errors="replace"))
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return (
        _PEM_CERT_HEADER + "\n" + "\n".join(lines) + "\n-----END CERTIFICATE-----\n"
    ).encode("ascii")


def load_pem_certificate(value: KeyMaterial) -> x509.Certificate:
    """Load an X.509 certificate.

    Args:
        value: PEM text/bytes/path, or bare base64 DER body

    Returns:
        Loaded X.509 certificate

    Raises:
        CertificateLoadError: If the certificate cannot be loaded

    Example:
        >>> cert = load_pem_certificate(Path("certs/idp.pem"))
        >>> print(cert.subject.rfc4514_string())
    """
    try:
        cert = x509.load_pem_x509_certificate(normalize_pem_certificate(value))
    except ValueError as e:
        raise CertificateLoadError(
            f"Failed to load certificate: {e}. "
            f"Ensure the value is PEM or base64-encoded DER."
        ) from e

    logger.debug(f"Loaded certificate: {cert.subject.rfc4514_string()}")
    check_expiration_warning(cert)
    return cert


def load_certificate_from_base64(value: str) -> x509.Certificate:
    """Load a certificate from the base64 DER text of an X509Certificate element."""
    try:
        der = base64.b64decode(_WHITESPACE.sub("", value), validate=True)
        return x509.load_der_x509_certificate(der)
    except (binascii.Error, ValueError) as e:
        raise CertificateLoadError(
            f"Invalid embedded X509Certificate: {e}"
        ) from e


def load_pem_private_key(
    value: KeyMaterial, passphrase: Optional[Union[str, bytes]] = None
) -> rsa.RSAPrivateKey:
    """Load an RSA private key from PEM.

    Args:
        value: PEM text/bytes/path
        passphrase: Optional passphrase for an encrypted key

    Returns:
        Loaded RSA private key

    Raises:
        CertificateLoadError: If the key cannot be loaded or is not RSA
    """
    password = passphrase.encode("utf-8") if isinstance(passphrase, str) else passphrase

    try:
        private_key = serialization.load_pem_private_key(
            _read_material(value), password=password
        )
    except TypeError as e:
        raise CertificateLoadError(
            f"Private key passphrase mismatch: {e}. "
            f"Provide the passphrase for encrypted keys and omit it for plain keys."
        ) from e
    except ValueError as e:
        raise CertificateLoadError(
            f"Failed to load private key: {e}. "
            f"Ensure the key is PEM encoded and the passphrase is correct."
        ) from e

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise CertificateLoadError(
            f"Unsupported private key type: {type(private_key).__name__}. "
            f"Only RSA keys are supported."
        )

    # Never log private key contents
    logger.debug(f"Loaded RSA private key ({private_key.key_size} bits)")
    return private_key


def certificate_fingerprint(cert: x509.Certificate) -> str:
    """Return the SHA-256 fingerprint as lowercase hex."""
    return cert.fingerprint(hashes.SHA256()).hex()


def fingerprints_match(expected: str, actual: str) -> bool:
    """Compare fingerprints ignoring case and colon separators."""
    def _normalize(value: str) -> str:
        return value.replace(":", "").strip().lower()

    return hmac.compare_digest(_normalize(expected), _normalize(actual))


def certificate_to_base64(cert: x509.Certificate) -> str:
    """Return the base64 DER body used inside ds:X509Certificate."""
    return base64.b64encode(cert.public_bytes(serialization.Encoding.DER)).decode("ascii")


def certificates_equal(first: x509.Certificate, second: x509.Certificate) -> bool:
    return hmac.compare_digest(
        first.public_bytes(serialization.Encoding.DER),
        second.public_bytes(serialization.Encoding.DER),
    )


def get_certificate_info(cert: x509.Certificate) -> CertificateInfo:
    """Extract certificate information for display and logging.

    Args:
        cert: X.509 certificate

    Returns:
        CertificateInfo dataclass with certificate details
    """
    public_key = cert.public_key()
    key_size = public_key.key_size if hasattr(public_key, "key_size") else None

    return CertificateInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        serial_number=cert.serial_number,
        fingerprint=certificate_fingerprint(cert),
        key_size=key_size,
    )


def check_expiration_warning(cert: x509.Certificate, warning_days: int = 30) -> bool:
    """Check if certificate is expired or expiring soon and log a warning.

    Expired certificates are still returned to the caller; SAML peers commonly
    pin self-signed certificates and rely on explicit trust instead of validity.

    Args:
        cert: X.509 certificate to check
        warning_days: Number of days before expiration to warn (default: 30)

    Returns:
        True if the certificate expires within warning_days, False otherwise
    """
    now = datetime.now(timezone.utc)
    warning_date = now + timedelta(days=warning_days)

    if cert.not_valid_after_utc < warning_date:
        days_remaining = (cert.not_valid_after_utc - now).days
        logger.warning(
            f"Certificate {cert.subject.rfc4514_string()} expiring soon or expired: "
            f"{days_remaining} days remaining "
            f"(expires: {cert.not_valid_after_utc.strftime('%Y-%m-%d')})"
        )
        return True

    return False


def load_certificate_bundle(
    certificate: KeyMaterial,
    private_key: Optional[KeyMaterial] = None,
    passphrase: Optional[Union[str, bytes]] = None,
) -> CertificateBundle:
    """Load a certificate and, optionally, its private key.

    Args:
        certificate: Certificate as PEM text/bytes/path or base64 body
        private_key: Optional PEM private key
        passphrase: Optional passphrase for the private key

    Returns:
        CertificateBundle with extracted info

    Raises:
        CertificateLoadError: If loading fails or the key does not belong
            to the certificate
    """
    cert = load_pem_certificate(certificate)
    key = None

    if private_key is not None:
        key = load_pem_private_key(private_key, passphrase)
        if key.public_key().public_numbers() != cert.public_key().public_numbers():
            raise CertificateLoadError(
                f"Private key does not match certificate "
                f"{cert.subject.rfc4514_string()}. "
                f"Configure the key that was used to issue the certificate."
            )

    return CertificateBundle(certificate=cert, private_key=key, info=get_certificate_info(cert))
