"""HTTP-Redirect binding codec.

Messages travel in a query parameter as URL-encode(base64(raw DEFLATE(xml))).
Signatures for this binding are detached: they are computed over the
"SAMLRequest=...&RelayState=...&SigAlg=..." octet string and sent in the
Signature query parameter.
"""

import base64
import binascii
import logging
import zlib
from typing import TYPE_CHECKING, Optional
from urllib.parse import quote, unquote

from ..models.saml import Binding
from ..utils.exceptions import BindingDecodeError

if TYPE_CHECKING:
    from ..saml.signer import SAMLSigner

logger = logging.getLogger(__name__)

# Upper bound on an inflated message; SAML messages are a few KiB
MAX_INFLATED_SIZE = 1024 * 1024


class RedirectBinding:
    """Codec for the HTTP-Redirect binding.

    Example:
        >>> value = RedirectBinding.encode("<samlp:AuthnRequest .../>")
        >>> RedirectBinding.decode(value)
        '<samlp:AuthnRequest .../>'
    """

    binding = Binding.REDIRECT

    @staticmethod
    def encode(xml: str) -> str:
        """Deflate, base64 and URL-encode an XML message."""
        compressor = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
        deflated = compressor.compress(xml.encode("utf-8")) + compressor.flush()
        return quote(base64.b64encode(deflated).decode("ascii"), safe="")

    @staticmethod
    def decode(value: str) -> str:
        """Exact inverse of encode.

        Accepts the value either still URL-encoded or already decoded by the
        web framework; base64 text contains no percent signs so unquoting is
        idempotent.

        Raises:
            BindingDecodeError: On invalid base64, an invalid, truncated or
                oversized DEFLATE stream, or non-UTF-8 content
        """
        text = unquote(value).replace(" ", "+")
        try:
            deflated = base64.b64decode("".join(text.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise BindingDecodeError(f"Redirect payload is not valid base64: {e}") from e

        decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        try:
            inflated = decompressor.decompress(deflated, MAX_INFLATED_SIZE + 1)
            if len(inflated) <= MAX_INFLATED_SIZE and not decompressor.unconsumed_tail:
                inflated += decompressor.flush()
        except zlib.error as e:
            raise BindingDecodeError(f"Redirect payload is not a valid DEFLATE stream: {e}") from e

        if len(inflated) > MAX_INFLATED_SIZE or decompressor.unconsumed_tail:
            raise BindingDecodeError(
                f"Redirect payload inflates beyond {MAX_INFLATED_SIZE} bytes"
            )

        if not decompressor.eof:
            raise BindingDecodeError("Redirect payload DEFLATE stream is truncated")

        try:
            return inflated.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BindingDecodeError("Redirect payload is not UTF-8") from e

    @staticmethod
    def octet_string(
        message_type: str,
        encoded_message: str,
        sig_alg: str,
        relay_state: Optional[str] = None,
    ) -> str:
        """Build the signed portion of a redirect query string.

        Args:
            message_type: SAMLRequest or SAMLResponse
            encoded_message: Output of encode
            sig_alg: Signature algorithm URI
            relay_state: Optional RelayState value (unencoded)
        """
        parts = [f"{message_type}={encoded_message}"]
        if relay_state is not None:
            parts.append(f"RelayState={quote(relay_state, safe='')}")
        parts.append(f"SigAlg={quote(sig_alg, safe='')}")
        return "&".join(parts)

    @staticmethod
    def octet_string_from_query(raw_query: str) -> str:
        """Cut the signed portion out of a raw, still-encoded query string.

        Keeps the SAMLRequest/SAMLResponse, RelayState and SigAlg pairs
        byte for byte and in the order received.

        Args:
            raw_query: Query string as it arrived, without the leading "?"

        Returns:
            Octet string for SamlHttpRequest.octet_string
        """
        signed = ("SAMLRequest", "SAMLResponse", "RelayState", "SigAlg")
        return "&".join(
            part for part in raw_query.split("&")
            if part.split("=", 1)[0] in signed
        )

    @classmethod
    def build_query(
        cls,
        xml: str,
        message_type: str = "SAMLRequest",
        relay_state: Optional[str] = None,
        signer: Optional["SAMLSigner"] = None,
    ) -> str:
        """Build a complete redirect query string, signed when a signer is given."""
        encoded = cls.encode(xml)

        if signer is None:
            query = f"{message_type}={encoded}"
            if relay_state is not None:
                query += f"&RelayState={quote(relay_state, safe='')}"
            return query

        octet_string = cls.octet_string(
            message_type, encoded, signer.signature_algorithm, relay_state
        )
        signature = signer.sign_redirect_query(octet_string)
        logger.debug(f"Signed redirect {message_type} query with {signer.signature_algorithm}")
        return f"{octet_string}&Signature={quote(signature, safe='')}"
