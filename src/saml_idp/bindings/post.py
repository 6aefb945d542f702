"""HTTP-POST binding codec.

Messages travel base64-encoded, uncompressed, in an HTML form field.
"""

import base64
import binascii

from ..models.saml import Binding
from ..utils.exceptions import BindingDecodeError


class PostBinding:
    """Codec for the HTTP-POST binding."""

    binding = Binding.POST

    @staticmethod
    def encode(xml: str) -> str:
        return base64.b64encode(xml.encode("utf-8")).decode("ascii")

    @staticmethod
    def decode(value: str) -> str:
        """Exact inverse of encode; line breaks inside the value are ignored.

        Raises:
            BindingDecodeError: On invalid base64 or non-UTF-8 content
        """
        try:
            raw = base64.b64decode("".join(value.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise BindingDecodeError(f"POST payload is not valid base64: {e}") from e

        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BindingDecodeError("POST payload is not UTF-8") from e
