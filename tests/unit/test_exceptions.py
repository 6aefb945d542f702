"""Unit tests for the exception hierarchy."""

import pytest

from saml_idp.utils.exceptions import (
    BindingDecodeError,
    CertificateLoadError,
    ConfigurationError,
    DecryptionError,
    EncryptionError,
    InvalidTemplateError,
    MalformedXmlError,
    MissingRequiredElementError,
    SAMLIdPError,
    SignatureVerificationError,
    UnsupportedBindingError,
)

ALL_ERRORS = [
    BindingDecodeError,
    CertificateLoadError,
    ConfigurationError,
    DecryptionError,
    EncryptionError,
    InvalidTemplateError,
    MalformedXmlError,
    MissingRequiredElementError,
    SignatureVerificationError,
    UnsupportedBindingError,
]


class TestExceptionHierarchy:
    """Test every engine error can be caught through the base class."""

    @pytest.mark.parametrize("error_cls", ALL_ERRORS)
    def test_subclass_of_base(self, error_cls):
        with pytest.raises(SAMLIdPError, match="boom"):
            raise error_cls("boom")

    def test_errors_are_distinct(self):
        """Test a failure kind is never caught as another kind."""
        with pytest.raises(SignatureVerificationError):
            try:
                raise SignatureVerificationError("bad digest")
            except (BindingDecodeError, MalformedXmlError):
                pytest.fail("caught by the wrong handler")

    def test_cause_preserved(self):
        """Test wrapped low-level errors stay reachable through __cause__."""
        try:
            try:
                int("not a number")
            except ValueError as e:
                raise ConfigurationError("wrapped") from e
        except ConfigurationError as wrapped:
            assert isinstance(wrapped.__cause__, ValueError)
