"""Identity provider: builds login responses and parses SP requests."""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from .bindings import get_codec
from .config import DEFAULT_IDP_SETTINGS
from .entity import Entity, ServiceProvider, SettingsInput
from .logging_audit import (
    LOGIN_REQUEST_PARSED,
    LOGIN_REQUEST_REJECTED,
    LOGIN_RESPONSE_CREATED,
    LOGOUT_REQUEST_PARSED,
    LOGOUT_REQUEST_REJECTED,
    log_audit_event,
)
from .models.saml import (
    Binding,
    LoginResponseContext,
    ParserField,
    ParserSpec,
    SamlHttpRequest,
    SignatureOrdering,
)
from .saml.response_builder import CustomTagReplacement, LoginResponseBuilder
from .saml.templates import build_attribute_statement, replace_tags_by_value
from .utils.exceptions import SAMLIdPError, UnsupportedBindingError

logger = logging.getLogger(__name__)

LOGIN_REQUEST_FIELDS = (
    ParserField("AuthnContextClassRef", optional=True),
    ParserField("Issuer"),
    ParserField("Signature", extract_entire_body=True, optional=True),
    ParserField("AuthnRequest", attributes=("ID",)),
    ParserField("NameIDPolicy", attributes=("Format", "AllowCreate"), optional=True),
)

LOGOUT_REQUEST_FIELDS = (
    ParserField("Issuer"),
    ParserField("NameID"),
    ParserField("SessionIndex", optional=True),
    ParserField("Signature", extract_entire_body=True, optional=True),
    ParserField("LogoutRequest", attributes=("ID", "Destination", "NotOnOrAfter")),
)


class IdentityProvider(Entity):
    """SAML identity provider.

    Builds signed (and optionally encrypted) login responses for service
    providers and parses the requests they send. All operations are
    synchronous; settings are immutable after construction.

    Attributes:
        login_response_context: Custom login response template with its
            AttributeStatement already built, or None

    Example:
        >>> idp = IdentityProvider({
        ...     "entity_id": "https://idp.example.org/metadata",
        ...     "private_key": idp_key_pem,
        ...     "signing_cert": idp_cert_pem,
        ... })
        >>> payload = idp.create_login_response(
        ...     sp, {"ID": "_req1"}, "post", {"email": "alice@example.org"}
        ... )
        >>> payload.entity_endpoint
        'https://sp.example.org/acs'
    """

    default_settings = DEFAULT_IDP_SETTINGS

    def __init__(self, settings: SettingsInput) -> None:
        super().__init__(settings)

        self.login_response_context: Optional[str] = None
        template = self.settings.login_response_template
        if template is not None:
            self.login_response_context = replace_tags_by_value(
                template.context,
                {"AttributeStatement": build_attribute_statement(template.attributes)},
            )

    def create_login_response(
        self,
        sp: ServiceProvider,
        request_info: Optional[Mapping[str, Any]],
        binding: Union[Binding, str],
        user: Mapping[str, Any],
        custom_tag_replacement: Optional[CustomTagReplacement] = None,
        ordering: SignatureOrdering = SignatureOrdering.SIGN_THEN_ENCRYPT,
        relay_state: Optional[str] = None,
    ) -> LoginResponseContext:
        """Build the login response for an SP.

        Args:
            sp: Service provider the response is for
            request_info: Request being answered ({"ID": ...} or the result
                of parse_login_request); None for IdP-initiated login
            binding: Binding to deliver the response over (only POST)
            user: Subject data (name_id or email, attributes, value tags)
            custom_tag_replacement: Fills the custom login response template
            ordering: Sign-then-encrypt (default) or encrypt-then-sign
            relay_state: RelayState to hand back with the payload

        Returns:
            Transport payload with the encoded response and the SP's
            assertion consumer service URL

        Raises:
            UnsupportedBindingError: For any binding other than POST
            ConfigurationError: If templates, keys, certificates or SP
                endpoints needed for the response are not configured
            EncryptionError: If assertion encryption fails
        """
        binding = Binding.resolve(binding)
        if binding is not Binding.POST:
            raise UnsupportedBindingError(
                f"Login responses can only be sent over the post binding, "
                f"not {binding.value}"
            )

        builder = LoginResponseBuilder(self, sp)
        xml, message = builder.build(request_info, user, custom_tag_replacement, ordering)

        payload = LoginResponseContext(
            id=message.id,
            context=get_codec(binding).encode(xml),
            entity_endpoint=sp.entity_meta.get_assertion_consumer_service(binding),
            relay_state=relay_state,
            message=message,
        )

        log_audit_event(LOGIN_RESPONSE_CREATED, {
            "status": "success",
            "idp": self.settings.entity_id,
            "sp": sp.settings.entity_id,
            "binding": binding.value,
            "message_id": message.id,
            "in_response_to": message.in_response_to,
            "ordering": ordering.value,
        })
        return payload

    def parse_login_request(
        self,
        sp: ServiceProvider,
        binding: Union[Binding, str],
        request: SamlHttpRequest,
    ) -> dict[str, Any]:
        """Decode, verify and extract an AuthnRequest sent by an SP.

        The signature is mandatory when this IdP sets
        want_authn_requests_signed; the SP's signing certificate (or
        fingerprint) is the trust anchor.

        Returns:
            Dict with AuthnContextClassRef, Issuer, Signature, AuthnRequest
            ({"ID": ...}) and NameIDPolicy ({"Format": ..., "AllowCreate": ...})

        Raises:
            SAMLIdPError: Any subclass describing why the request was rejected
        """
        spec = ParserSpec(
            parser_format=LOGIN_REQUEST_FIELDS,
            from_entity=sp,
            check_signature=self.entity_meta.is_want_authn_requests_signed(),
            parser_type="SAMLRequest",
            type="login",
        )
        return self._parse(
            spec, binding, request, LOGIN_REQUEST_PARSED, LOGIN_REQUEST_REJECTED,
            "AuthnRequest",
        )

    def parse_logout_request(
        self,
        sp: ServiceProvider,
        binding: Union[Binding, str],
        request: SamlHttpRequest,
    ) -> dict[str, Any]:
        """Decode, verify and extract a LogoutRequest sent by an SP.

        The signature is mandatory when this IdP sets
        want_logout_request_signed.
        """
        spec = ParserSpec(
            parser_format=LOGOUT_REQUEST_FIELDS,
            from_entity=sp,
            check_signature=self.entity_meta.is_want_logout_request_signed(),
            parser_type="SAMLRequest",
            type="logout",
        )
        return self._parse(
            spec, binding, request, LOGOUT_REQUEST_PARSED, LOGOUT_REQUEST_REJECTED,
            "LogoutRequest",
        )

    def _parse(
        self,
        spec: ParserSpec,
        binding: Union[Binding, str],
        request: SamlHttpRequest,
        parsed_event: str,
        rejected_event: str,
        id_key: str,
    ) -> dict[str, Any]:
        sp = spec.from_entity
        binding_name = binding.value if isinstance(binding, Binding) else str(binding)
        try:
            result = self.parser.parse(spec, binding, request)
        except SAMLIdPError as e:
            log_audit_event(rejected_event, {
                "status": "failure",
                "idp": self.settings.entity_id,
                "sp": sp.settings.entity_id,
                "binding": binding_name,
                "error_type": type(e).__name__,
                "error_message": str(e),
            })
            raise

        request_attrs = result.get(id_key) or {}
        log_audit_event(parsed_event, {
            "status": "success",
            "idp": self.settings.entity_id,
            "sp": sp.settings.entity_id,
            "binding": binding_name,
            "message_id": request_attrs.get("ID") if isinstance(request_attrs, Mapping) else None,
            "issuer": result.get("Issuer"),
            "signature_checked": spec.check_signature,
        })
        return result
