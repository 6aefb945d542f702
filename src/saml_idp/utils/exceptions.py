"""Custom exception classes for the SAML IdP engine.

All exceptions inherit from SAMLIdPError to allow catching all custom exceptions.
Every error except InvalidTemplateError is fatal to the enclosing call.
"""


class SAMLIdPError(Exception):
    """Base exception for all SAML IdP engine custom exceptions."""

    pass


class ConfigurationError(SAMLIdPError):
    """Raised when entity settings are missing or invalid.

    Examples:
        - Settings fail schema validation
        - A custom tag replacement is supplied but no template is configured
        - No assertion consumer service is declared for a binding
    """

    pass


class CertificateLoadError(SAMLIdPError):
    """Raised when certificate or private key loading fails.

    Examples:
        - Invalid PEM data
        - Incorrect passphrase for encrypted key
        - Key material required for an operation is not configured
    """

    pass


class UnsupportedBindingError(SAMLIdPError):
    """Raised when a requested binding is unknown or not implemented.

    Examples:
        - Artifact binding requested
        - Redirect binding requested for a login response
        - Unknown binding name or URN
    """

    pass


class InvalidTemplateError(SAMLIdPError):
    """Raised when a message template has an invalid shape.

    Handled internally as a warning unless strict template validation is on.
    """

    pass


class BindingDecodeError(SAMLIdPError):
    """Raised when a transport value cannot be decoded.

    Examples:
        - Invalid base64
        - Invalid or truncated DEFLATE stream
        - Decoded bytes are not UTF-8
        - SAML parameter absent from the request
    """

    pass


class MalformedXmlError(SAMLIdPError):
    """Raised when a payload is not well-formed XML.

    Examples:
        - Unclosed tags
        - Document type declarations
        - Template substitution produced broken markup
    """

    pass


class SignatureVerificationError(SAMLIdPError):
    """Raised when a required signature is missing or invalid.

    Examples:
        - No Signature element or query signature
        - Digest mismatch (content modified after signing)
        - Signing certificate does not match the trusted certificate
        - Reference does not resolve to exactly one element
    """

    pass


class MissingRequiredElementError(SAMLIdPError):
    """Raised when a required element is absent from a parsed message."""

    pass


class EncryptionError(SAMLIdPError):
    """Raised when assertion encryption fails."""

    pass


class DecryptionError(SAMLIdPError):
    """Raised when assertion decryption fails.

    Examples:
        - Private key does not match the recipient certificate
        - Unsupported encryption algorithm
        - Corrupted cipher data
    """

    pass
