"""Entity settings: schema, defaults and construction."""

from .defaults import DEFAULT_IDP_SETTINGS, DEFAULT_SP_SETTINGS
from .manager import build_entity_settings, merge_settings
from .schema import (
    AttributeDescriptor,
    EntitySettings,
    MessageTemplate,
    ServiceEndpoint,
    TagPrefix,
    generate_message_id,
)

__all__ = [
    "AttributeDescriptor",
    "build_entity_settings",
    "DEFAULT_IDP_SETTINGS",
    "DEFAULT_SP_SETTINGS",
    "EntitySettings",
    "generate_message_id",
    "merge_settings",
    "MessageTemplate",
    "ServiceEndpoint",
    "TagPrefix",
]
