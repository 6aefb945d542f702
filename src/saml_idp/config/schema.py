"""Entity settings schema using pydantic.

This module defines the settings an identity provider or a service provider
peer is constructed from. Settings are validated once, at construction, and
are immutable afterwards.
"""

import logging
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.saml import Binding
from ..saml.encryption import AES256_CBC, DATA_ALGORITHMS, KEY_ALGORITHMS, RSA_OAEP_MGF1P
from ..saml.signer import DEFAULT_SIGNATURE_ALGORITHM, SIGNATURE_ALGORITHMS
from ..saml.templates import (
    ATTRNAME_FORMAT_BASIC,
    REQUIRED_LOGIN_REQUEST_TAGS,
    REQUIRED_LOGIN_RESPONSE_TAGS,
    validate_template_tags,
)
from ..utils.exceptions import InvalidTemplateError, UnsupportedBindingError

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes, Path]


def generate_message_id() -> str:
    """Default message ID generator: "_" followed by a random UUID in hex."""
    return f"_{uuid.uuid4().hex}"


class ServiceEndpoint(BaseModel):
    """A protocol endpoint of an entity.

    Attributes:
        binding: Binding the endpoint accepts
        location: Endpoint URL
        is_default: Preferred endpoint when several share a binding
    """

    model_config = ConfigDict(frozen=True)

    binding: Binding
    location: str
    is_default: bool = False

    @field_validator("binding", mode="before")
    @classmethod
    def resolve_binding(cls, v: Any) -> Binding:
        try:
            return Binding.resolve(v)
        except UnsupportedBindingError as e:
            raise ValueError(str(e)) from e

    @field_validator("location")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL is valid HTTP/HTTPS.

        Raises:
            ValueError: If URL does not start with http:// or https://
        """
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL: {v}. Must start with http:// or https://")
        return v


class TagPrefix(BaseModel):
    """Namespace prefixes used for generated elements."""

    model_config = ConfigDict(frozen=True)

    encrypted_assertion: str = Field(
        default="saml", pattern=r"^[A-Za-z_][A-Za-z0-9_.-]*$"
    )


class AttributeDescriptor(BaseModel):
    """One saml:Attribute in a login response template.

    Attributes:
        name: Attribute Name
        name_format: Attribute NameFormat URI
        value_xsi_type: xsi:type of each AttributeValue
        value_tag: User field that supplies the value ("email", "user.email")
        values: Literal values, used instead of value_tag when given
    """

    model_config = ConfigDict(frozen=True)

    name: str
    name_format: str = ATTRNAME_FORMAT_BASIC
    value_xsi_type: str = "xs:string"
    value_tag: Optional[str] = None
    values: tuple[str, ...] = ()

    @field_validator("values", mode="before")
    @classmethod
    def coerce_values(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v


class MessageTemplate(BaseModel):
    """A custom message template: XML context plus ordered attributes."""

    model_config = ConfigDict(frozen=True)

    context: str
    attributes: tuple[AttributeDescriptor, ...] = ()


class EntitySettings(BaseModel):
    """Settings of one SAML entity (this IdP, or an SP peer).

    Key material fields accept PEM text, bytes or a Path to a PEM file.
    signing_cert also accepts the bare base64 body found in metadata.

    Example:
        >>> settings = EntitySettings(
        ...     entity_id="https://idp.example.org/metadata",
        ...     private_key=Path("idp-key.pem"),
        ...     signing_cert=Path("idp-cert.pem"),
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    entity_id: str = Field(..., min_length=1)

    private_key: Optional[KeyMaterial] = None
    private_key_pass: Optional[str] = None
    signing_cert: Optional[KeyMaterial] = None
    signing_cert_fingerprint: Optional[str] = None
    encrypt_cert: Optional[KeyMaterial] = None
    encrypt_private_key: Optional[KeyMaterial] = None
    encrypt_private_key_pass: Optional[str] = None

    request_signature_algorithm: str = DEFAULT_SIGNATURE_ALGORITHM
    data_encryption_algorithm: str = AES256_CBC
    key_encryption_algorithm: str = RSA_OAEP_MGF1P

    name_id_format: tuple[str, ...] = ()
    single_sign_on_service: tuple[ServiceEndpoint, ...] = ()
    single_logout_service: tuple[ServiceEndpoint, ...] = ()
    assertion_consumer_service: tuple[ServiceEndpoint, ...] = ()

    want_authn_requests_signed: bool = False
    want_logout_request_signed: bool = False
    want_logout_response_signed: bool = False
    want_assertions_signed: bool = True
    want_message_signed: bool = False
    is_assertion_encrypted: bool = False

    tag_prefix: TagPrefix = Field(default_factory=TagPrefix)
    login_response_template: Optional[MessageTemplate] = None
    login_request_template: Optional[MessageTemplate] = None
    generate_id: Callable[[], str] = generate_message_id
    strict_templates: bool = False

    @field_validator("request_signature_algorithm")
    @classmethod
    def validate_signature_algorithm(cls, v: str) -> str:
        if v not in SIGNATURE_ALGORITHMS:
            raise ValueError(
                f"Unsupported signature algorithm: {v}. "
                f"Must be one of: {', '.join(SIGNATURE_ALGORITHMS)}"
            )
        return v

    @field_validator("data_encryption_algorithm")
    @classmethod
    def validate_data_algorithm(cls, v: str) -> str:
        if v not in DATA_ALGORITHMS:
            raise ValueError(
                f"Unsupported data encryption algorithm: {v}. "
                f"Must be one of: {', '.join(DATA_ALGORITHMS)}"
            )
        return v

    @field_validator("key_encryption_algorithm")
    @classmethod
    def validate_key_algorithm(cls, v: str) -> str:
        if v not in KEY_ALGORITHMS:
            raise ValueError(
                f"Unsupported key encryption algorithm: {v}. "
                f"Must be one of: {', '.join(KEY_ALGORITHMS)}"
            )
        return v

    @field_validator("name_id_format", mode="before")
    @classmethod
    def coerce_name_id_format(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v

    @model_validator(mode="before")
    @classmethod
    def check_templates(cls, data: Any) -> Any:
        """Drop malformed templates with a warning, or raise when strict.

        Raises:
            InvalidTemplateError: If a template is malformed and
                strict_templates is set
        """
        if not isinstance(data, Mapping):
            return data

        data = dict(data)
        strict = bool(data.get("strict_templates", False))
        for key, required in (
            ("login_response_template", REQUIRED_LOGIN_RESPONSE_TAGS),
            ("login_request_template", REQUIRED_LOGIN_REQUEST_TAGS),
        ):
            template = data.get(key)
            if template is None:
                continue
            try:
                _check_template_shape(key, template, required)
            except InvalidTemplateError as e:
                if strict:
                    raise
                logger.warning(f"{e}. The template is ignored.")
                data[key] = None
        return data


def _check_template_shape(key: str, template: Any, required: Sequence[str]) -> None:
    if isinstance(template, MessageTemplate):
        context, attributes = template.context, template.attributes
    elif isinstance(template, Mapping):
        context, attributes = template.get("context"), template.get("attributes", ())
    else:
        raise InvalidTemplateError(f"Invalid {key}: expected a mapping with a context")

    if not isinstance(context, str):
        raise InvalidTemplateError(f"Invalid {key}: context must be a string")

    if attributes is None:
        attributes = ()
    if isinstance(attributes, (str, bytes)) or not isinstance(attributes, Sequence):
        raise InvalidTemplateError(f"Invalid {key}: attributes must be a sequence")

    expected = list(required)
    if attributes:
        expected.append("AttributeStatement")
    missing = validate_template_tags(context, expected)
    if missing:
        raise InvalidTemplateError(
            f"Invalid {key}: missing placeholders {', '.join('{' + m + '}' for m in missing)}"
        )
