"""SAML entities: shared base, metadata accessors and the SP peer description."""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from .config import DEFAULT_SP_SETTINGS, EntitySettings, ServiceEndpoint, build_entity_settings
from .models.saml import Binding, CertificateBundle
from .saml.certificate_manager import (
    check_expiration_warning,
    load_certificate_bundle,
    load_pem_certificate,
    load_pem_private_key,
)
from .saml.parser import GenericParser
from .saml.signer import SAMLSigner
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SettingsInput = Union[Mapping[str, Any], EntitySettings]


class EntityMetadata:
    """Read-only view of an entity's endpoints, flags and certificates."""

    def __init__(
        self,
        settings: EntitySettings,
        signing_certificate: Optional[x509.Certificate] = None,
        encrypt_certificate: Optional[x509.Certificate] = None,
    ) -> None:
        self.settings = settings
        self._signing_certificate = signing_certificate
        self._encrypt_certificate = encrypt_certificate

    @property
    def entity_id(self) -> str:
        return self.settings.entity_id

    def get_assertion_consumer_service(self, binding: Union[Binding, str]) -> str:
        """Return the assertion consumer service URL for a binding.

        Raises:
            ConfigurationError: If the entity declares no endpoint for binding
        """
        return _select_endpoint(
            self.settings.assertion_consumer_service, binding, "assertion_consumer_service",
            self.entity_id,
        )

    def get_single_sign_on_service(self, binding: Union[Binding, str]) -> str:
        return _select_endpoint(
            self.settings.single_sign_on_service, binding, "single_sign_on_service",
            self.entity_id,
        )

    def get_single_logout_service(self, binding: Union[Binding, str]) -> str:
        return _select_endpoint(
            self.settings.single_logout_service, binding, "single_logout_service",
            self.entity_id,
        )

    def get_name_id_format(self) -> tuple[str, ...]:
        return self.settings.name_id_format

    def is_want_authn_requests_signed(self) -> bool:
        return self.settings.want_authn_requests_signed

    def is_want_logout_request_signed(self) -> bool:
        return self.settings.want_logout_request_signed

    def is_want_assertions_signed(self) -> bool:
        return self.settings.want_assertions_signed

    def is_want_message_signed(self) -> bool:
        return self.settings.want_message_signed

    def get_signing_certificate(self) -> Optional[x509.Certificate]:
        return self._signing_certificate

    def get_encrypt_certificate(self) -> Optional[x509.Certificate]:
        return self._encrypt_certificate


def _select_endpoint(
    endpoints: tuple[ServiceEndpoint, ...],
    binding: Union[Binding, str],
    kind: str,
    entity_id: str,
) -> str:
    binding = Binding.resolve(binding)
    matching = [endpoint for endpoint in endpoints if endpoint.binding is binding]
    if not matching:
        raise ConfigurationError(
            f"Entity {entity_id} declares no {kind} endpoint for the "
            f"{binding.value} binding"
        )
    for endpoint in matching:
        if endpoint.is_default:
            return endpoint.location
    return matching[0].location


class Entity:
    """Common base of the identity provider and service provider peers.

    Validates settings once and loads all key material up front, so a
    misconfigured entity fails at construction instead of mid-protocol.

    Attributes:
        settings: Validated, immutable settings
        signing_bundle: Signing certificate and (for the local entity) key
        encrypt_certificate: Certificate peers encrypt assertions to
        decryption_key: Private key matching encrypt_certificate, if held
        entity_meta: Metadata accessors
        parser: Generic parser for inbound messages
    """

    default_settings: Mapping[str, Any] = {}

    def __init__(self, settings: SettingsInput) -> None:
        self.settings = build_entity_settings(self.default_settings, settings)

        self.signing_bundle: Optional[CertificateBundle] = None
        if self.settings.signing_cert is not None:
            self.signing_bundle = load_certificate_bundle(
                self.settings.signing_cert,
                self.settings.private_key,
                self.settings.private_key_pass,
            )
            check_expiration_warning(self.signing_bundle.certificate)
        elif self.settings.private_key is not None:
            raise ConfigurationError(
                f"Entity {self.settings.entity_id} has a private_key but no signing_cert. "
                f"Configure the certificate that matches the key."
            )

        self.encrypt_certificate: Optional[x509.Certificate] = None
        if self.settings.encrypt_cert is not None:
            self.encrypt_certificate = load_pem_certificate(self.settings.encrypt_cert)

        self.decryption_key: Optional[rsa.RSAPrivateKey] = None
        if self.settings.encrypt_private_key is not None:
            self.decryption_key = load_pem_private_key(
                self.settings.encrypt_private_key,
                self.settings.encrypt_private_key_pass,
            )

        self.entity_meta = EntityMetadata(
            self.settings,
            signing_certificate=(
                self.signing_bundle.certificate if self.signing_bundle else None
            ),
            encrypt_certificate=self.encrypt_certificate,
        )
        self.parser = GenericParser(self)

        logger.debug(f"Initialized {type(self).__name__} {self.settings.entity_id}")

    def signer(self) -> SAMLSigner:
        """Signer over this entity's signing key.

        Raises:
            ConfigurationError: If the entity holds no private key
        """
        if self.signing_bundle is None or self.signing_bundle.private_key is None:
            raise ConfigurationError(
                f"Entity {self.settings.entity_id} cannot sign: "
                f"configure private_key and signing_cert"
            )
        return SAMLSigner.from_bundle(
            self.signing_bundle, self.settings.request_signature_algorithm
        )


class ServiceProvider(Entity):
    """Description of an SP peer: identity, endpoints, flags and certificates.

    Only what the IdP needs to talk to the SP; no SP protocol operations.

    Example:
        >>> sp = ServiceProvider({
        ...     "entity_id": "https://sp.example.org/metadata",
        ...     "signing_cert": sp_cert_pem,
        ...     "assertion_consumer_service": [
        ...         {"binding": "post", "location": "https://sp.example.org/acs"},
        ...     ],
        ... })
    """

    default_settings = DEFAULT_SP_SETTINGS
