"""Binding codecs for carrying SAML messages over HTTP.

get_codec maps every Binding member to its codec; artifact has an explicit
unsupported branch.
"""

from typing import Union

from ..models.saml import Binding
from ..utils.exceptions import UnsupportedBindingError
from .post import PostBinding
from .redirect import RedirectBinding


def get_codec(binding: Union[Binding, str]) -> Union[type[RedirectBinding], type[PostBinding]]:
    """Return the codec class for a binding.

    Raises:
        UnsupportedBindingError: For artifact or unknown bindings
    """
    binding = Binding.resolve(binding)

    if binding is Binding.REDIRECT:
        return RedirectBinding
    if binding is Binding.POST:
        return PostBinding
    # Binding.ARTIFACT
    raise UnsupportedBindingError(
        f"The {binding.value} binding is not supported"
    )


__all__ = ["PostBinding", "RedirectBinding", "get_codec"]
