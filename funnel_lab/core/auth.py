"""
Bearer-token authentication.

Tokens are issued by the external auth service; this module only maps a
presented token to a user id.
"""

from datetime import datetime
from typing import Callable, Optional

from .errors import AuthError
from .usage import utc_now
from ..storage.db import DEFAULT_DB_PATH
from ..storage.repository import fetch_auth_session

BEARER_PREFIX = "bearer "


def parse_bearer(authorization: Optional[str]) -> str:
    """Extract the token from an Authorization header value.

    Raises:
        AuthError: If the header is missing or not a bearer token
    """
    if not authorization or not authorization.strip():
        raise AuthError("Authorization header is required")
    value = authorization.strip()
    if not value.lower().startswith(BEARER_PREFIX):
        raise AuthError("Authorization header must use the Bearer scheme")
    token = value[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthError("Bearer token is empty")
    return token


class SessionAuthenticator:
    """Resolves bearer tokens against the auth_sessions table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, clock: Optional[Callable[[], datetime]] = None):
        self.db_path = db_path
        self.clock = clock or utc_now

    def authenticate(self, authorization: Optional[str]) -> str:
        """Return the user id behind the header.

        Raises:
            AuthError: If the token is missing, unknown or expired
        """
        token = parse_bearer(authorization)
        session = fetch_auth_session(token, self.db_path)
        if session is None:
            raise AuthError("Invalid authentication token")
        if session.expires_at is not None and session.expires_at <= self.clock():
            raise AuthError("Authentication token has expired")
        return session.user_id
