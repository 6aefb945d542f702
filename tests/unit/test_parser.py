"""Unit tests for the generic SAML message parser."""

import re
from urllib.parse import parse_qs, quote

import pytest

from saml_idp.bindings import PostBinding, RedirectBinding
from saml_idp.entity import ServiceProvider
from saml_idp.models.saml import ParserField, ParserSpec, SamlHttpRequest
from saml_idp.saml.certificate_manager import certificate_fingerprint
from saml_idp.saml.parser import GenericParser
from saml_idp.saml.signer import RSA_SHA256, SAMLSigner
from saml_idp.utils.exceptions import (
    BindingDecodeError,
    MalformedXmlError,
    MissingRequiredElementError,
    SignatureVerificationError,
    UnsupportedBindingError,
)

LOGOUT_REQUEST_XML = (
    '<samlp:LogoutRequest xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" '
    'xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" ID="_logout1" Version="2.0" '
    'IssueInstant="2024-01-01T00:00:00Z" Destination="https://idp.example.org/slo">'
    "<saml:Issuer>https://sp.example.org/metadata</saml:Issuer>"
    "<saml:NameID>alice@example.org</saml:NameID>"
    "<samlp:SessionIndex>_s1</samlp:SessionIndex>"
    "<samlp:SessionIndex>_s2</samlp:SessionIndex>"
    "</samlp:LogoutRequest>"
)

LOGIN_FIELDS = (
    ParserField("Issuer"),
    ParserField("AuthnRequest", attributes=("ID", "Destination", "ForceAuthn")),
    ParserField("AuthnContextClassRef", optional=True),
    ParserField("Signature", extract_entire_body=True, optional=True),
)


@pytest.fixture
def sp(sp_settings):
    return ServiceProvider(sp_settings)


@pytest.fixture
def sp_signer(sp_keys):
    return SAMLSigner(sp_keys.key, sp_keys.cert)


@pytest.fixture
def parser():
    return GenericParser()


def _spec(sp, check_signature=False, fields=LOGIN_FIELDS, type="login"):
    return ParserSpec(
        parser_format=fields,
        from_entity=sp,
        check_signature=check_signature,
        parser_type="SAMLRequest",
        type=type,
    )


def _query(query_string: str) -> dict:
    """Decode a query string the way a web framework would."""
    return {key: values[0] for key, values in parse_qs(query_string).items()}


class TestParsePost:
    """Test parsing POST binding messages."""

    def test_extracts_fields(self, parser, sp, make_authn_request):
        """Test text, attribute and optional fields are extracted."""
        # Arrange
        body = {"SAMLRequest": PostBinding.encode(make_authn_request("_req42"))}

        # Act
        result = parser.parse(_spec(sp), "post", SamlHttpRequest(body=body))

        # Assert
        assert result["Issuer"] == "https://sp.example.org/metadata"
        assert result["AuthnRequest"] == {
            "ID": "_req42",
            "Destination": "https://idp.example.org/sso",
        }
        assert result["AuthnContextClassRef"] == (
            "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport"
        )
        assert result["Signature"] is None

    def test_binding_urn_accepted(self, parser, sp, make_authn_request):
        body = {"SAMLRequest": PostBinding.encode(make_authn_request())}

        result = parser.parse(
            _spec(sp),
            "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST",
            SamlHttpRequest(body=body),
        )

        assert result["Issuer"] == "https://sp.example.org/metadata"

    def test_plain_names_in_format(self, parser, sp, make_authn_request):
        """Test bare element names work as parser format entries."""
        body = {"SAMLRequest": PostBinding.encode(make_authn_request())}

        result = parser.parse(_spec(sp, fields=("Issuer",)), "post", SamlHttpRequest(body=body))

        assert result == {"Issuer": "https://sp.example.org/metadata"}

    def test_custom_result_key(self, parser, sp, make_authn_request):
        body = {"SAMLRequest": PostBinding.encode(make_authn_request())}
        fields = (ParserField("Issuer", key="issuer"),)

        result = parser.parse(_spec(sp, fields=fields), "post", SamlHttpRequest(body=body))

        assert result == {"issuer": "https://sp.example.org/metadata"}

    def test_repeated_element_returns_list(self, parser, sp):
        """Test several matching elements yield a list in document order."""
        body = {"SAMLRequest": PostBinding.encode(LOGOUT_REQUEST_XML)}
        fields = (ParserField("SessionIndex"),)

        result = parser.parse(
            _spec(sp, fields=fields, type="logout"), "post", SamlHttpRequest(body=body)
        )

        assert result["SessionIndex"] == ["_s1", "_s2"]

    def test_missing_required_element(self, parser, sp, make_authn_request):
        body = {"SAMLRequest": PostBinding.encode(make_authn_request())}
        fields = (ParserField("NameID"),)

        with pytest.raises(MissingRequiredElementError, match="NameID"):
            parser.parse(_spec(sp, fields=fields), "post", SamlHttpRequest(body=body))

    def test_missing_parameter(self, parser, sp):
        with pytest.raises(BindingDecodeError, match="Missing SAMLRequest parameter"):
            parser.parse(_spec(sp), "post", SamlHttpRequest(body={}))

    def test_query_ignored_for_post(self, parser, sp, make_authn_request):
        """Test POST messages are only read from the form body."""
        query = {"SAMLRequest": PostBinding.encode(make_authn_request())}

        with pytest.raises(BindingDecodeError):
            parser.parse(_spec(sp), "post", SamlHttpRequest(query=query))

    def test_wrong_message_type(self, parser, sp):
        """Test a LogoutRequest is rejected where an AuthnRequest is expected."""
        body = {"SAMLRequest": PostBinding.encode(LOGOUT_REQUEST_XML)}

        with pytest.raises(MissingRequiredElementError, match="Expected a AuthnRequest"):
            parser.parse(_spec(sp), "post", SamlHttpRequest(body=body))

    def test_malformed_xml(self, parser, sp):
        body = {"SAMLRequest": PostBinding.encode("<samlp:AuthnRequest")}

        with pytest.raises(MalformedXmlError):
            parser.parse(_spec(sp), "post", SamlHttpRequest(body=body))

    def test_artifact_binding_unsupported(self, parser, sp):
        with pytest.raises(UnsupportedBindingError):
            parser.parse(_spec(sp), "artifact", SamlHttpRequest(body={"SAMLart": "x"}))


class TestSignedPost:
    """Test signature enforcement on POST messages."""

    def test_valid_signature(self, parser, sp, sp_signer, make_authn_request):
        """Test a request signed by the SP passes and exposes its Signature."""
        signed = sp_signer.sign(make_authn_request())
        body = {"SAMLRequest": PostBinding.encode(signed)}

        result = parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

        assert result["Signature"].startswith("<ds:Signature")
        assert result["AuthnRequest"]["ID"] == "_req123"

    def test_signature_contents_not_extracted(self, parser, sp, sp_signer, make_authn_request):
        """Test elements inside ds:Signature are invisible to extraction."""
        signed = sp_signer.sign(make_authn_request())
        body = {"SAMLRequest": PostBinding.encode(signed)}
        fields = (ParserField("DigestValue", optional=True),)

        result = parser.parse(
            _spec(sp, check_signature=True, fields=fields), "post", SamlHttpRequest(body=body)
        )

        assert result["DigestValue"] is None

    def test_unsigned_rejected(self, parser, sp, make_authn_request):
        body = {"SAMLRequest": PostBinding.encode(make_authn_request())}

        with pytest.raises(SignatureVerificationError):
            parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

    def test_untrusted_signer_rejected(self, parser, sp, rogue_keys, make_authn_request):
        signed = SAMLSigner(rogue_keys.key, rogue_keys.cert).sign(make_authn_request())
        body = {"SAMLRequest": PostBinding.encode(signed)}

        with pytest.raises(SignatureVerificationError):
            parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

    def test_tampered_request_rejected(self, parser, sp, sp_signer, make_authn_request):
        signed = sp_signer.sign(make_authn_request())
        tampered = signed.replace("https://sp.example.org/metadata", "https://evil.example.org")
        body = {"SAMLRequest": PostBinding.encode(tampered)}

        with pytest.raises(SignatureVerificationError):
            parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

    def test_comment_injected_after_signing_keeps_full_values(
        self, parser, sp, sp_signer, make_authn_request
    ):
        """Test comments added inside signed text cannot shorten extracted values."""
        signed = sp_signer.sign(make_authn_request())
        tampered = signed.replace(
            "classes:PasswordProtectedTransport", "classes:Password<!---->ProtectedTransport"
        ).replace(
            ">https://sp.example.org/metadata<", ">https://sp.example.org<!---->/metadata<", 1
        )
        assert tampered.count("<!---->") == 2
        body = {"SAMLRequest": PostBinding.encode(tampered)}

        result = parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

        assert result["Issuer"] == "https://sp.example.org/metadata"
        assert result["AuthnContextClassRef"] == (
            "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport"
        )

    def test_comment_next_to_name_id_policy_keeps_format(
        self, parser, sp, sp_signer, make_authn_request
    ):
        """Test comments around NameIDPolicy leave its extracted attributes intact."""
        signed = sp_signer.sign(make_authn_request())
        tampered = signed.replace(
            "<samlp:NameIDPolicy", "<!--urn:oasis:names:tc:SAML:2.0:nameid-format:transient--><samlp:NameIDPolicy"
        )
        body = {"SAMLRequest": PostBinding.encode(tampered)}
        fields = (ParserField("Issuer"), ParserField("NameIDPolicy", attributes=("Format",)))

        result = parser.parse(
            _spec(sp, check_signature=True, fields=fields), "post", SamlHttpRequest(body=body)
        )

        assert result["NameIDPolicy"] == {
            "Format": "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"
        }

    def test_whitespace_added_to_signed_text_rejected(
        self, parser, sp, sp_signer, make_authn_request
    ):
        """Test whitespace inside signed text changes the digest."""
        signed = sp_signer.sign(make_authn_request())
        tampered = signed.replace(
            ">https://sp.example.org/metadata<", ">https://sp.example.org/metadata <", 1
        )
        body = {"SAMLRequest": PostBinding.encode(tampered)}

        with pytest.raises(SignatureVerificationError, match="Digest mismatch"):
            parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

    def test_fingerprint_trust(self, parser, sp_keys, sp_signer, make_authn_request):
        """Test a peer known only by fingerprint can be verified."""
        sp = ServiceProvider({
            "entity_id": "https://sp.example.org/metadata",
            "signing_cert_fingerprint": certificate_fingerprint(sp_keys.cert),
        })
        body = {"SAMLRequest": PostBinding.encode(sp_signer.sign(make_authn_request()))}

        result = parser.parse(_spec(sp, check_signature=True), "post", SamlHttpRequest(body=body))

        assert result["Issuer"] == "https://sp.example.org/metadata"


class TestParseRedirect:
    """Test parsing redirect binding messages."""

    def test_unsigned_redirect(self, parser, sp, make_authn_request):
        query = _query(RedirectBinding.build_query(make_authn_request("_r1")))

        result = parser.parse(_spec(sp), "redirect", SamlHttpRequest(query=query))

        assert result["AuthnRequest"]["ID"] == "_r1"

    def test_body_ignored_for_redirect(self, parser, sp, make_authn_request):
        body = {"SAMLRequest": RedirectBinding.encode(make_authn_request())}

        with pytest.raises(BindingDecodeError, match="redirect"):
            parser.parse(_spec(sp), "redirect", SamlHttpRequest(body=body))

    def test_signed_redirect(self, parser, sp, sp_signer, make_authn_request):
        """Test a detached query signature verifies after framework decoding."""
        query_string = RedirectBinding.build_query(
            make_authn_request(), relay_state="/app?x=1", signer=sp_signer
        )

        result = parser.parse(
            _spec(sp, check_signature=True), "redirect", SamlHttpRequest(query=_query(query_string))
        )

        assert result["Issuer"] == "https://sp.example.org/metadata"

    def test_signed_redirect_with_raw_octet_string(self, parser, sp, sp_signer, make_authn_request):
        query_string = RedirectBinding.build_query(make_authn_request(), signer=sp_signer)
        octet_string = query_string.rsplit("&Signature=", 1)[0]

        result = parser.parse(
            _spec(sp, check_signature=True),
            "redirect",
            SamlHttpRequest(query=_query(query_string), octet_string=octet_string),
        )

        assert result["AuthnRequest"]["ID"] == "_req123"

    def test_lowercase_escapes_verify_only_with_raw_octet_string(
        self, parser, sp, sp_signer, make_authn_request
    ):
        """Test a sender using lowercase percent-escapes needs the raw octet string."""
        octet_string = re.sub(
            r"%[0-9A-F]{2}",
            lambda match: match.group(0).lower(),
            RedirectBinding.octet_string(
                "SAMLRequest",
                RedirectBinding.encode(make_authn_request()),
                RSA_SHA256,
                "/app",
            ),
        )
        signature = sp_signer.sign_redirect_query(octet_string)
        raw_query = f"{octet_string}&Signature={quote(signature, safe='')}"

        with pytest.raises(SignatureVerificationError):
            parser.parse(
                _spec(sp, check_signature=True), "redirect", SamlHttpRequest(query=_query(raw_query))
            )

        request = SamlHttpRequest(
            query=_query(raw_query),
            octet_string=RedirectBinding.octet_string_from_query(raw_query),
        )
        result = parser.parse(_spec(sp, check_signature=True), "redirect", request)

        assert result["AuthnRequest"]["ID"] == "_req123"

    def test_tampered_relay_state_rejected(self, parser, sp, sp_signer, make_authn_request):
        query = _query(RedirectBinding.build_query(
            make_authn_request(), relay_state="/app", signer=sp_signer
        ))
        query["RelayState"] = "/admin"

        with pytest.raises(SignatureVerificationError):
            parser.parse(_spec(sp, check_signature=True), "redirect", SamlHttpRequest(query=query))

    def test_missing_signature_rejected(self, parser, sp, make_authn_request):
        query = _query(RedirectBinding.build_query(make_authn_request()))
        query["SigAlg"] = RSA_SHA256

        with pytest.raises(SignatureVerificationError, match="no Signature/SigAlg"):
            parser.parse(_spec(sp, check_signature=True), "redirect", SamlHttpRequest(query=query))

    def test_invalid_payload(self, parser, sp):
        with pytest.raises(BindingDecodeError):
            parser.parse(_spec(sp), "redirect", SamlHttpRequest(query={"SAMLRequest": "!!!"}))


class TestParserSpecValidation:
    """Test parser spec combinations."""

    def test_unknown_message_type(self, parser, sp, make_authn_request):
        body = {"SAMLRequest": PostBinding.encode(make_authn_request())}

        with pytest.raises(ValueError, match="No artifact message"):
            parser.parse(_spec(sp, type="artifact"), "post", SamlHttpRequest(body=body))

    def test_logout_request(self, parser, sp):
        body = {"SAMLRequest": PostBinding.encode(LOGOUT_REQUEST_XML)}
        fields = (
            ParserField("NameID"),
            ParserField("LogoutRequest", attributes=("ID", "Destination")),
        )

        result = parser.parse(
            _spec(sp, fields=fields, type="logout"), "post", SamlHttpRequest(body=body)
        )

        assert result == {
            "NameID": "alice@example.org",
            "LogoutRequest": {"ID": "_logout1", "Destination": "https://idp.example.org/slo"},
        }
