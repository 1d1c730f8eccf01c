"""
Unit tests for request session handling

Tests bearer extraction, session cookie decoding, PDS URL normalisation
and the precedence rules for credential, PDS and DID.
"""

import base64
import json
from urllib.parse import quote

import pytest

from errors import MissingCredential
from session import (
    extract_bearer_token,
    normalize_pds_url,
    parse_session_cookie,
    resolve_request_context,
)

SESSION = {"accessJwt": "session-jwt", "pdsUrl": "https://pds.example.com/xrpc", "did": "did:plc:frank"}


def encode_base64(data: dict) -> str:
    return base64.b64encode(json.dumps(data).encode('utf-8')).decode('ascii')


class TestBearerToken:
    """Test suite for Authorization header parsing."""

    def test_extracts_token(self) -> None:
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_scheme_is_case_insensitive(self) -> None:
        assert extract_bearer_token("bearer   token-1") == "token-1"

    @pytest.mark.parametrize("header", [None, "", "Basic dXNlcjpwdw==", "Bearer"])
    def test_rejects_other_headers(self, header) -> None:
        assert extract_bearer_token(header) is None


class TestSessionCookie:
    """Test suite for session cookie decoding."""

    def test_plain_json(self) -> None:
        assert parse_session_cookie(json.dumps(SESSION)) == SESSION

    def test_url_encoded_json(self) -> None:
        assert parse_session_cookie(quote(json.dumps(SESSION))) == SESSION

    def test_base64_json(self) -> None:
        assert parse_session_cookie(encode_base64(SESSION)) == SESSION

    def test_url_encoded_base64_json(self) -> None:
        assert parse_session_cookie(quote(encode_base64(SESSION), safe='')) == SESSION

    @pytest.mark.parametrize("value", [None, "", "%%%not-json", "W1tb"])
    def test_undecodable_cookie(self, value) -> None:
        assert parse_session_cookie(value) is None

    def test_non_object_json_is_ignored(self) -> None:
        assert parse_session_cookie(json.dumps(["a", "b"])) is None


class TestPdsUrl:
    """Test suite for PDS URL normalisation."""

    @pytest.mark.parametrize("url, expected", [
        ("https://pds.example.com", "https://pds.example.com"),
        ("https://pds.example.com/", "https://pds.example.com"),
        ("https://pds.example.com/xrpc", "https://pds.example.com"),
        ("  https://pds.example.com/  ", "https://pds.example.com"),
        (None, "https://bsky.social"),
        ("   ", "https://bsky.social"),
    ])
    def test_normalize(self, url, expected) -> None:
        assert normalize_pds_url(url) == expected


class TestRequestContext:
    """Test suite for request context resolution."""

    def test_bearer_header_wins_over_session(self) -> None:
        """Test header credentials take precedence."""
        context = resolve_request_context(
            {"authorization": "Bearer header-jwt"},
            {},
            json.dumps(SESSION)
        )

        assert context.access_jwt == "header-jwt"
        assert context.pds_url == "https://pds.example.com"
        assert context.did == "did:plc:frank"

    @pytest.mark.parametrize("field_name", ["jwtToken", "accessJwt", "token"])
    def test_session_token_fields(self, field_name: str) -> None:
        """Test every session field that can carry the token."""
        context = resolve_request_context({}, {}, json.dumps({field_name: "cookie-jwt"}))

        assert context.access_jwt == "cookie-jwt"
        assert context.pds_url == "https://bsky.social"
        assert context.did is None

    def test_session_field_precedence(self) -> None:
        """Test jwtToken is preferred over the other session fields."""
        session = {"token": "c", "accessJwt": "b", "jwtToken": "a"}

        assert resolve_request_context({}, {}, json.dumps(session)).access_jwt == "a"

    def test_query_overrides_header_and_session(self) -> None:
        """Test query parameters take precedence for PDS and DID."""
        context = resolve_request_context(
            {"authorization": "Bearer jwt", "x-pds-url": "https://header.example", "x-did": "did:plc:header"},
            {"pdsUrl": "https://query.example/", "did": "did:plc:query"},
            json.dumps(SESSION)
        )

        assert context.pds_url == "https://query.example"
        assert context.did == "did:plc:query"

    def test_header_overrides_session(self) -> None:
        """Test headers take precedence over the session for PDS and DID."""
        context = resolve_request_context(
            {"x-pds-url": "https://header.example/xrpc", "x-did": "did:plc:header"},
            {},
            json.dumps(SESSION)
        )

        assert context.access_jwt == "session-jwt"
        assert context.pds_url == "https://header.example"
        assert context.did == "did:plc:header"

    def test_configured_default_pds(self) -> None:
        """Test the configured default PDS is used when none is requested."""
        context = resolve_request_context({"authorization": "Bearer jwt"}, {}, None, default_pds_url="https://own.pds")

        assert context.pds_url == "https://own.pds"

    def test_missing_credential(self) -> None:
        """Test a request without any credential is rejected."""
        with pytest.raises(MissingCredential):
            resolve_request_context({}, {"did": "did:plc:frank"}, json.dumps({"pdsUrl": "https://pds.example.com"}))

    def test_empty_query_pds_url_means_default(self) -> None:
        """Test an empty ``pdsUrl`` parameter selects the default PDS over the session's."""
        context = resolve_request_context({}, {"pdsUrl": ""}, json.dumps(SESSION))

        assert context.pds_url == "https://bsky.social"

    def test_empty_header_pds_url_means_default(self) -> None:
        """Test an empty ``x-pds-url`` header is not skipped in favour of the session."""
        context = resolve_request_context({"x-pds-url": ""}, {}, json.dumps(SESSION))

        assert context.pds_url == "https://bsky.social"

    def test_empty_query_did_means_no_did(self) -> None:
        """Test an empty ``did`` parameter suppresses the session DID."""
        context = resolve_request_context({}, {"did": ""}, json.dumps(SESSION))

        assert context.did is None
