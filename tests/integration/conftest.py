"""Integration test fixtures and configuration.

This module provides fixtures for integration tests, including:
- IdP and SP entity factories built from the shared settings fixtures
- Helpers to decode, decrypt and verify login responses the way an SP would
"""

import logging
from typing import Callable, Optional

import pytest

from saml_idp import IdentityProvider, ServiceProvider
from saml_idp.bindings import PostBinding
from saml_idp.config import merge_settings
from saml_idp.saml.encryption import AssertionEncryptor
from saml_idp.saml.verifier import SAMLVerifier
from saml_idp.saml.xml_utils import DS_NS, SAML_NS, parse_xml, to_string

logger = logging.getLogger(__name__)


@pytest.fixture
def make_idp(idp_settings) -> Callable[..., IdentityProvider]:
    """Factory for an IdentityProvider with settings overrides."""

    def _make(**overrides) -> IdentityProvider:
        return IdentityProvider(merge_settings(idp_settings, overrides))

    return _make


@pytest.fixture
def make_sp(sp_settings) -> Callable[..., ServiceProvider]:
    """Factory for a ServiceProvider peer with settings overrides."""

    def _make(**overrides) -> ServiceProvider:
        return ServiceProvider(merge_settings(sp_settings, overrides))

    return _make


@pytest.fixture
def idp(make_idp) -> IdentityProvider:
    return make_idp()


@pytest.fixture
def sp(make_sp) -> ServiceProvider:
    return make_sp()


@pytest.fixture
def open_response(idp_keys, sp_encrypt_keys) -> Callable[..., tuple]:
    """Decode a POST login response and recover its assertion as an SP would.

    Verifies the Response signature when present, decrypts an
    EncryptedAssertion with the SP encryption key and verifies the assertion
    signature when present.

    Returns:
        (response root, assertion root) parsed from the payload
    """

    def _open(context: str, expect_encrypted: Optional[bool] = None) -> tuple:
        xml = PostBinding.decode(context)
        root = parse_xml(xml)
        verifier = SAMLVerifier(trusted_cert=idp_keys.cert)

        if root.find(f"{{{DS_NS}}}Signature") is not None:
            verifier.verify(xml)

        encrypted = root.find(f"{{{SAML_NS}}}EncryptedAssertion")
        if expect_encrypted is not None:
            assert (encrypted is not None) == expect_encrypted

        if encrypted is not None:
            assertion_xml = AssertionEncryptor().decrypt(encrypted, sp_encrypt_keys.key)
        else:
            assertion_xml = to_string(root.find(f"{{{SAML_NS}}}Assertion"))

        assertion = parse_xml(assertion_xml)
        if assertion.find(f"{{{DS_NS}}}Signature") is not None:
            verifier.verify(assertion_xml, expected_id=assertion.get("ID"))
        return root, assertion

    return _open
