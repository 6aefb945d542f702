"""Settings construction: explicit merge of defaults and caller overrides."""

import copy
import logging
from collections.abc import Mapping
from typing import Any, Union

from pydantic import ValidationError

from ..utils.exceptions import ConfigurationError
from .schema import EntitySettings

logger = logging.getLogger(__name__)


def merge_settings(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge overrides onto defaults.

    Nested mappings are merged key by key; any other override value replaces
    the default. Neither input is modified.

    Args:
        defaults: Default settings
        overrides: Caller settings

    Returns:
        New merged dictionary
    """
    merged = copy.copy(dict(defaults))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_settings(current, value)
        else:
            merged[key] = value
    return merged


def build_entity_settings(
    defaults: Mapping[str, Any],
    overrides: Union[Mapping[str, Any], EntitySettings],
) -> EntitySettings:
    """Build validated entity settings.

    Args:
        defaults: Default settings dictionary
        overrides: Caller settings, as a dictionary or EntitySettings

    Returns:
        Validated, immutable EntitySettings

    Raises:
        ConfigurationError: If the merged settings fail validation
        InvalidTemplateError: If a template is malformed and
            strict_templates is set

    Example:
        >>> settings = build_entity_settings(
        ...     DEFAULT_IDP_SETTINGS,
        ...     {"entity_id": "https://idp.example.org/metadata"},
        ... )
    """
    if isinstance(overrides, EntitySettings):
        overrides = {
            name: getattr(overrides, name) for name in overrides.model_fields_set
        }

    merged = merge_settings(defaults, overrides)

    try:
        settings = EntitySettings(**merged)
    except ValidationError as e:
        raise ConfigurationError(
            f"Entity settings validation failed:\n{e}\n\n"
            f"Fix: Check the settings passed for entity "
            f"{merged.get('entity_id', '<unknown>')!r}."
        ) from e

    logger.debug(f"Built settings for entity {settings.entity_id}")
    return settings
