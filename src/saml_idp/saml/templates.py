"""SAML message templates and tag substitution.

Templates are raw XML strings carrying {Tag} placeholders. Substitution is a
single pass, so a value that itself contains "{Something}" is never expanded
again. Values are inserted verbatim: callers escape plain text with
escape_value and pass XML fragments as they are.
"""

import logging
import re
from typing import Any, Iterable, Mapping, Optional, Sequence
from xml.sax.saxutils import escape

from .xml_utils import SAML_NS, SAMLP_NS, XS_NS, XSI_NS

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_TAG_SPLIT = re.compile(r"[^0-9A-Za-z]+")

ATTRNAME_FORMAT_BASIC = "urn:oasis:names:tc:SAML:2.0:attrname-format:basic"
ATTRNAME_FORMAT_URI = "urn:oasis:names:tc:SAML:2.0:attrname-format:uri"

NAMEID_FORMAT_UNSPECIFIED = "urn:oasis:names:tc:SAML:1.1:nameid-format:unspecified"
NAMEID_FORMAT_EMAIL = "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"
STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"
AUTHN_CONTEXT_PASSWORD_PROTECTED = (
    "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport"
)

# Placeholders a custom template must carry
REQUIRED_LOGIN_RESPONSE_TAGS = ("ID",)
REQUIRED_LOGIN_REQUEST_TAGS = ("ID",)

LOGIN_RESPONSE_TEMPLATE = (
    f'<samlp:Response xmlns:samlp="{SAMLP_NS}" xmlns:saml="{SAML_NS}" '
    'ID="{ID}" Version="2.0" IssueInstant="{IssueInstant}" '
    'Destination="{Destination}" InResponseTo="{InResponseTo}">'
    "<saml:Issuer>{Issuer}</saml:Issuer>"
    '<samlp:Status><samlp:StatusCode Value="{StatusCode}"/></samlp:Status>'
    f'<saml:Assertion xmlns:xsi="{XSI_NS}" xmlns:xs="{XS_NS}" '
    'ID="{AssertionID}" Version="2.0" IssueInstant="{IssueInstant}">'
    "<saml:Issuer>{Issuer}</saml:Issuer>"
    "<saml:Subject>"
    '<saml:NameID Format="{NameIDFormat}">{NameID}</saml:NameID>'
    '<saml:SubjectConfirmation Method="urn:oasis:names:tc:SAML:2.0:cm:bearer">'
    '<saml:SubjectConfirmationData NotOnOrAfter="{SubjectConfirmationDataNotOnOrAfter}" '
    'Recipient="{SubjectRecipient}" InResponseTo="{InResponseTo}"/>'
    "</saml:SubjectConfirmation>"
    "</saml:Subject>"
    '<saml:Conditions NotBefore="{ConditionsNotBefore}" NotOnOrAfter="{ConditionsNotOnOrAfter}">'
    "<saml:AudienceRestriction><saml:Audience>{Audience}</saml:Audience></saml:AudienceRestriction>"
    "</saml:Conditions>"
    "{AuthnStatement}"
    "{AttributeStatement}"
    "</saml:Assertion>"
    "</samlp:Response>"
)

AUTHN_STATEMENT_TEMPLATE = (
    '<saml:AuthnStatement AuthnInstant="{AuthnInstant}" SessionIndex="{SessionIndex}">'
    "<saml:AuthnContext>"
    "<saml:AuthnContextClassRef>{AuthnContextClassRef}</saml:AuthnContextClassRef>"
    "</saml:AuthnContext>"
    "</saml:AuthnStatement>"
)

LOGIN_REQUEST_TEMPLATE = (
    f'<samlp:AuthnRequest xmlns:samlp="{SAMLP_NS}" xmlns:saml="{SAML_NS}" '
    'ID="{ID}" Version="2.0" IssueInstant="{IssueInstant}" Destination="{Destination}" '
    'ProtocolBinding="{ProtocolBinding}" AssertionConsumerServiceURL="{AssertionConsumerServiceURL}">'
    "<saml:Issuer>{Issuer}</saml:Issuer>"
    '<samlp:NameIDPolicy Format="{NameIDFormat}" AllowCreate="{AllowCreate}"/>'
    '<samlp:RequestedAuthnContext Comparison="exact">'
    "<saml:AuthnContextClassRef>{AuthnContextClassRef}</saml:AuthnContextClassRef>"
    "</samlp:RequestedAuthnContext>"
    "</samlp:AuthnRequest>"
)


def escape_value(value: Any) -> str:
    """Escape a plain value for use in element text or a quoted attribute."""
    return escape(str(value), {'"': "&quot;"})


def replace_tags_by_value(context: str, values: Mapping[str, Any]) -> str:
    """Replace every {Tag} placeholder that has a value.

    Placeholders without a value are left untouched so a later pass can
    fill them.

    Args:
        context: Template XML
        values: Tag name to replacement (text or XML fragment)

    Returns:
        Template with placeholders substituted

    Example:
        >>> replace_tags_by_value("<a>{Name}</a>", {"Name": "x"})
        '<a>x</a>'
    """
    def _substitute(match: re.Match) -> str:
        tag = match.group(1)
        if tag in values:
            return str(values[tag])
        return match.group(0)

    return _PLACEHOLDER.sub(_substitute, context)


def extract_placeholders(context: str) -> set[str]:
    """Return the set of tag names used as {Tag} placeholders."""
    return set(_PLACEHOLDER.findall(context))


def validate_template_tags(context: str, required: Iterable[str]) -> list[str]:
    """Return the required tags missing from context, sorted."""
    return sorted(set(required) - extract_placeholders(context))


def attribute_tag(value_tag: str) -> str:
    """Placeholder name for an attribute value tag ("user.email" -> "attrUserEmail")."""
    parts = [p for p in _TAG_SPLIT.split(value_tag) if p]
    return "attr" + "".join(p[:1].upper() + p[1:] for p in parts)


def _field(descriptor: Any, name: str, default: Any = None) -> Any:
    if isinstance(descriptor, Mapping):
        return descriptor.get(name, default)
    return getattr(descriptor, name, default)


def build_attribute_statement(attributes: Sequence[Any], prefix: str = "saml") -> str:
    """Build an AttributeStatement fragment from ordered attribute descriptors.

    Each descriptor (mapping or object) carries name, name_format,
    value_xsi_type and either literal values or a value_tag. Literal values
    are escaped; a value_tag becomes an {attr...} placeholder.

    Args:
        attributes: Ordered attribute descriptors
        prefix: Prefix bound to the SAML assertion namespace in the template

    Returns:
        AttributeStatement XML fragment, or "" when there are no attributes
    """
    if not attributes:
        return ""

    parts = [f"<{prefix}:AttributeStatement>"]
    for descriptor in attributes:
        name = _field(descriptor, "name")
        name_format = _field(descriptor, "name_format") or ATTRNAME_FORMAT_BASIC
        xsi_type = _field(descriptor, "value_xsi_type") or "xs:string"
        value_tag = _field(descriptor, "value_tag")
        values = _field(descriptor, "values") or ()
        if isinstance(values, str):
            values = (values,)

        if values:
            rendered = [escape_value(v) for v in values]
        elif value_tag:
            rendered = [f"{{{attribute_tag(value_tag)}}}"]
        else:
            rendered = []

        parts.append(
            f'<{prefix}:Attribute Name="{escape_value(name)}" '
            f'NameFormat="{escape_value(name_format)}">'
        )
        for value in rendered:
            parts.append(
                f'<{prefix}:AttributeValue xmlns:xs="{XS_NS}" xmlns:xsi="{XSI_NS}" '
                f'xsi:type="{escape_value(xsi_type)}">{value}</{prefix}:AttributeValue>'
            )
        parts.append(f"</{prefix}:Attribute>")
    parts.append(f"</{prefix}:AttributeStatement>")
    return "".join(parts)


def lookup_value_tag(user: Mapping[str, Any], value_tag: str) -> Optional[Any]:
    """Resolve a value tag such as "user.email" against a user mapping."""
    if value_tag in user:
        return user[value_tag]

    segments = value_tag.split(".")
    if segments and segments[0] == "user":
        segments = segments[1:]

    current: Any = user
    for segment in segments:
        if not isinstance(current, Mapping) or segment not in current:
            return None
        current = current[segment]
    return current
