"""
Request Session Handling

Resolves the access credential, PDS URL and account DID for an activity
request from its bearer header, query string, headers and session cookie.
"""

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import unquote

from config import DEFAULT_PDS_URL
from errors import MissingCredential

_BEARER_PATTERN = re.compile(r'^Bearer\s+(.+)$', re.IGNORECASE)

# Session cookie fields that may carry the access token, in order of preference
ACCESS_TOKEN_FIELDS = ('jwtToken', 'accessJwt', 'token')


@dataclass(frozen=True)
class RequestContext:
    """Everything the pipeline needs to know about the caller."""

    access_jwt: str
    pds_url: str
    did: Optional[str] = None


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer`` header, if any."""
    if not header:
        return None

    match = _BEARER_PATTERN.match(header)
    return match.group(1) if match else None


def parse_session_cookie(value: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode the session cookie.

    The cookie may hold raw JSON, URL-encoded JSON or base64-encoded JSON
    (possibly URL-encoded as well). Every variant is tried and the first one
    that decodes to a JSON object wins.

    Args:
        value: Raw cookie value

    Returns:
        Session data dictionary, or None when nothing decodes
    """
    if not value:
        return None

    attempts: List[str] = [value]
    decoded_url = unquote(value)
    if decoded_url not in attempts:
        attempts.append(decoded_url)

    for attempt in list(attempts):
        try:
            decoded = base64.b64decode(attempt + '=' * (-len(attempt) % 4)).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError, ValueError):
            continue
        if decoded and decoded not in attempts:
            attempts.append(decoded)

    for attempt in attempts:
        try:
            session = json.loads(attempt)
        except ValueError:
            continue
        if isinstance(session, dict):
            return session

    return None


def normalize_pds_url(url: Optional[str], default: str = DEFAULT_PDS_URL) -> str:
    """Trim a PDS URL and strip one trailing ``/xrpc`` or ``/``."""
    if not url:
        return default

    trimmed = url.strip()
    if not trimmed:
        return default

    if trimmed.endswith('/xrpc'):
        return trimmed[:-len('/xrpc')]

    if trimmed.endswith('/'):
        return trimmed[:-1]

    return trimmed


def resolve_request_context(
    headers: Mapping[str, str],
    query: Mapping[str, str],
    session_cookie: Optional[str],
    default_pds_url: str = DEFAULT_PDS_URL
) -> RequestContext:
    """
    Work out who is asking and which PDS to ask.

    Args:
        headers: Request headers (case-insensitive mapping)
        query: Query string parameters
        session_cookie: Raw value of the ``session`` cookie
        default_pds_url: PDS used when the request names none

    Returns:
        RequestContext for the pipeline

    Raises:
        MissingCredential: If neither the header nor the session carries a token
    """
    session = parse_session_cookie(session_cookie) or {}

    access_jwt = extract_bearer_token(headers.get('authorization'))
    for field_name in ACCESS_TOKEN_FIELDS:
        if access_jwt:
            break
        access_jwt = _session_str(session, field_name)

    if not access_jwt:
        raise MissingCredential("No bearer token or session credential on request")

    requested_pds_url = _first_present(
        query.get('pdsUrl'), headers.get('x-pds-url'), _session_str(session, 'pdsUrl')
    )
    pds_url = normalize_pds_url(requested_pds_url, default=default_pds_url)
    did = _first_present(query.get('did'), headers.get('x-did'), _session_str(session, 'did'))

    return RequestContext(access_jwt=access_jwt, pds_url=pds_url, did=did or None)


def _session_str(session: Mapping[str, Any], key: str) -> Optional[str]:
    value = session.get(key)
    return value if isinstance(value, str) else None


def _first_present(*values: Optional[str]) -> Optional[str]:
    """Return the first value that was supplied at all, even if empty."""
    return next((value for value in values if value is not None), None)
