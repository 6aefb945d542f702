"""Login response construction.

Builds the samlp:Response for an SP from the default or a custom template,
then applies assertion signing, assertion encryption and message signing in
the requested order.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from lxml import etree

from ..models.saml import Binding, SamlMessage, SignatureOrdering
from ..utils.exceptions import ConfigurationError, MalformedXmlError
from .encryption import AssertionEncryptor
from .signer import SAMLSigner
from .templates import (
    AUTHN_CONTEXT_PASSWORD_PROTECTED,
    AUTHN_STATEMENT_TEMPLATE,
    LOGIN_RESPONSE_TEMPLATE,
    NAMEID_FORMAT_UNSPECIFIED,
    STATUS_SUCCESS,
    attribute_tag,
    build_attribute_statement,
    escape_value,
    lookup_value_tag,
    replace_tags_by_value,
)
from .xml_utils import SAML_NS, parse_xml, to_string

if TYPE_CHECKING:
    from ..entity import Entity

logger = logging.getLogger(__name__)

CustomTagReplacement = Callable[[str, Dict[str, str]], str]

DEFAULT_VALIDITY_MINUTES = 5


def generate_saml_timestamps(
    validity_minutes: int = DEFAULT_VALIDITY_MINUTES,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """Generate the IssueInstant and validity window timestamps.

    Args:
        validity_minutes: Minutes until the assertion expires (default: 5)
        now: Reference time (default: current UTC time)

    Returns:
        Dictionary with issue_instant, not_before and not_on_or_after in
        SAML's "%Y-%m-%dT%H:%M:%SZ" format
    """
    now = now or datetime.now(timezone.utc)
    not_on_or_after = now + timedelta(minutes=validity_minutes)
    return {
        "issue_instant": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "not_before": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "not_on_or_after": not_on_or_after.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


def request_id_from(request_info: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Return the ID of the request being answered.

    Accepts {"ID": ...}, {"id": ...} or a login request parse result, whose
    "AuthnRequest" entry holds the request attributes.
    """
    if not request_info:
        return None

    for key in ("ID", "id"):
        if request_info.get(key):
            return str(request_info[key])

    authn_request = request_info.get("AuthnRequest")
    if isinstance(authn_request, Mapping) and authn_request.get("ID"):
        return str(authn_request["ID"])
    return None


def _user_attributes(user: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Normalize user["attributes"] to an ordered list of descriptors."""
    attributes = user.get("attributes") or ()
    if isinstance(attributes, Mapping):
        return [
            {"name": name, "values": _as_values(value)}
            for name, value in attributes.items()
        ]

    descriptors = []
    for attribute in attributes:
        if isinstance(attribute, Mapping):
            descriptor = dict(attribute)
            if "values" in descriptor:
                descriptor["values"] = _as_values(descriptor["values"])
            elif "value" in descriptor:
                descriptor["values"] = _as_values(descriptor.pop("value"))
            descriptors.append(descriptor)
        else:
            descriptors.append(attribute)
    return descriptors


def _as_values(value: Any) -> tuple[str, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        return (str(value),)
    return tuple(str(v) for v in value)


class LoginResponseBuilder:
    """Build a protected login response from an IdP for one SP.

    Example:
        >>> builder = LoginResponseBuilder(idp, sp)
        >>> xml, message = builder.build({"ID": "_req1"}, {"email": "a@example.org"})
    """

    def __init__(self, idp: "Entity", sp: "Entity") -> None:
        self.idp = idp
        self.sp = sp

    def build(
        self,
        request_info: Optional[Mapping[str, Any]],
        user: Mapping[str, Any],
        custom_tag_replacement: Optional[CustomTagReplacement] = None,
        ordering: SignatureOrdering = SignatureOrdering.SIGN_THEN_ENCRYPT,
    ) -> tuple[str, SamlMessage]:
        """Build, sign and encrypt the response.

        Args:
            request_info: Request being answered (see request_id_from)
            user: Subject data: name_id or email, optional name_id_format,
                optional attributes and any keys referenced by value tags
            custom_tag_replacement: Fills the custom login response template
            ordering: Sign-then-encrypt or encrypt-then-sign

        Returns:
            Serialized response XML and its summary

        Raises:
            ConfigurationError: If a required template, key or certificate
                is not configured
            MalformedXmlError: If the filled template is not well-formed
            EncryptionError: If assertion encryption fails
        """
        idp_settings = self.idp.settings
        template = idp_settings.login_response_template
        if custom_tag_replacement is not None and template is None:
            raise ConfigurationError(
                "custom_tag_replacement was supplied but the IdP has no usable "
                "login_response_template. Check the startup log for template warnings."
            )

        values = self._tag_values(request_info, user)

        if template is None:
            context = LOGIN_RESPONSE_TEMPLATE
            values["AttributeStatement"] = build_attribute_statement(_user_attributes(user))
        else:
            context = self.idp.login_response_context
            if user.get("attributes"):
                logger.debug(
                    f"Custom login_response_template in use: ignoring "
                    f"{len(_user_attributes(user))} user attribute(s); only the "
                    f"template's value_tag descriptors are filled"
                )
            for descriptor in template.attributes:
                if descriptor.value_tag and not descriptor.values:
                    value = lookup_value_tag(user, descriptor.value_tag)
                    values[attribute_tag(descriptor.value_tag)] = (
                        "" if value is None else escape_value(value)
                    )

        if custom_tag_replacement is not None:
            xml = custom_tag_replacement(context, dict(values))
        else:
            xml = replace_tags_by_value(context, values)

        root = parse_xml(xml)
        for element in root.iter():
            if isinstance(element.tag, str) and element.get("InResponseTo") == "":
                del element.attrib["InResponseTo"]

        assertion_ids = self._protect(root, ordering)

        response_id = root.get("ID")
        if not response_id:
            raise MalformedXmlError("Login response has no ID attribute")

        message = SamlMessage(
            id=response_id,
            issuer=idp_settings.entity_id,
            destination=root.get("Destination", ""),
            issue_instant=root.get("IssueInstant", ""),
            in_response_to=root.get("InResponseTo"),
            status_code=values["StatusCode"],
            assertion_ids=assertion_ids,
        )
        return to_string(root), message

    def _tag_values(
        self, request_info: Optional[Mapping[str, Any]], user: Mapping[str, Any]
    ) -> Dict[str, str]:
        idp_settings = self.idp.settings
        generate_id = idp_settings.generate_id
        timestamps = generate_saml_timestamps()
        acs_url = self.sp.entity_meta.get_assertion_consumer_service(Binding.POST)
        in_response_to = request_id_from(request_info) or ""

        name_id = user.get("name_id") or user.get("email")
        if not name_id:
            raise ConfigurationError("user must carry a name_id or email for the Subject")

        name_id_format = (
            user.get("name_id_format")
            or next(iter(self.sp.settings.name_id_format), None)
            or next(iter(idp_settings.name_id_format), None)
            or NAMEID_FORMAT_UNSPECIFIED
        )

        authn_statement = replace_tags_by_value(
            AUTHN_STATEMENT_TEMPLATE,
            {
                "AuthnInstant": timestamps["issue_instant"],
                "SessionIndex": escape_value(user.get("session_index") or generate_id()),
                "AuthnContextClassRef": escape_value(
                    user.get("authn_context_class_ref") or AUTHN_CONTEXT_PASSWORD_PROTECTED
                ),
            },
        )

        return {
            "ID": escape_value(generate_id()),
            "AssertionID": escape_value(generate_id()),
            "Destination": escape_value(acs_url),
            "Audience": escape_value(self.sp.settings.entity_id),
            "Issuer": escape_value(idp_settings.entity_id),
            "IssueInstant": timestamps["issue_instant"],
            "StatusCode": STATUS_SUCCESS,
            "NameIDFormat": escape_value(name_id_format),
            "NameID": escape_value(name_id),
            "InResponseTo": escape_value(in_response_to),
            "SubjectConfirmationDataNotOnOrAfter": timestamps["not_on_or_after"],
            "SubjectRecipient": escape_value(acs_url),
            "ConditionsNotBefore": timestamps["not_before"],
            "ConditionsNotOnOrAfter": timestamps["not_on_or_after"],
            "AuthnStatement": authn_statement,
        }

    def _protect(self, root: etree._Element, ordering: SignatureOrdering) -> tuple[str, ...]:
        """Apply signing and encryption; return the assertion IDs."""
        idp_settings = self.idp.settings
        sp_meta = self.sp.entity_meta
        encrypt = idp_settings.is_assertion_encrypted
        sign_assertion = sp_meta.is_want_assertions_signed()
        sign_message = sp_meta.is_want_message_signed()

        assertion = root.find(f".//{{{SAML_NS}}}Assertion")
        assertion_ids = () if assertion is None else (assertion.get("ID", ""),)

        if assertion is None and (encrypt or sign_assertion):
            raise ConfigurationError(
                "Login response template produced no saml:Assertion to sign or encrypt"
            )

        signer: Optional[SAMLSigner] = None
        if sign_assertion or sign_message or (encrypt and ordering is SignatureOrdering.ENCRYPT_THEN_SIGN):
            signer = self.idp.signer()

        encryptor: Optional[AssertionEncryptor] = None
        recipient_cert = None
        if encrypt:
            recipient_cert = sp_meta.get_encrypt_certificate()
            if recipient_cert is None:
                raise ConfigurationError(
                    f"Assertion encryption is enabled but SP {self.sp.settings.entity_id} "
                    f"has no encrypt_cert"
                )
            encryptor = AssertionEncryptor(
                data_algorithm=idp_settings.data_encryption_algorithm,
                key_algorithm=idp_settings.key_encryption_algorithm,
                prefix=idp_settings.tag_prefix.encrypted_assertion,
            )

        if encryptor is not None and ordering is SignatureOrdering.ENCRYPT_THEN_SIGN:
            encryptor.encrypt_in_place(assertion, recipient_cert)
            signer.sign_element(root)
            logger.debug("Assertion encrypted, then Response signed")
            return assertion_ids

        if sign_assertion:
            signer.sign_element(assertion)
        if encryptor is not None:
            encryptor.encrypt_in_place(assertion, recipient_cert)
        if sign_message:
            signer.sign_element(root)

        logger.debug(
            f"Response protected: assertion_signed={sign_assertion}, "
            f"encrypted={encrypt}, message_signed={sign_message}"
        )
        return assertion_ids
