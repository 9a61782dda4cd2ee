"""
Client-side session persistence.

The session object handed to a client (id, user id, username, expiry) lives
behind a small store interface so the auth flow never touches cookies or
headers directly. ``RequestSessionStore`` keeps it in a signed cookie or
bearer token, ``InMemorySessionStore`` is used by tests and scripts.
"""
import logging
from typing import Optional, Protocol

from fastapi import Request, Response
from jose import JWTError, jwt
from pydantic import ValidationError

from config import settings
from schemas import SessionRecord

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self) -> Optional[SessionRecord]: ...

    def set(self, session: SessionRecord) -> None: ...

    def clear(self) -> None: ...


def encode_session_token(session: SessionRecord) -> str:
    payload = {
        "sid": session.id,
        "user_id": session.user_id,
        "username": session.username,
        # No "exp" claim: an expired session must still decode so logout can delete its row
        "expires_at": session.expires_at.isoformat(),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_session_token(token: str) -> Optional[SessionRecord]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return SessionRecord(
            id=payload["sid"],
            user_id=payload["user_id"],
            username=payload["username"],
            expires_at=payload["expires_at"],
        )
    except (JWTError, KeyError, ValidationError) as e:
        logger.debug("Ignoring unreadable session token: %s", e)
        return None


class InMemorySessionStore:
    def __init__(self, session: Optional[SessionRecord] = None):
        self._session = session

    def get(self) -> Optional[SessionRecord]:
        return self._session

    def set(self, session: SessionRecord) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class RequestSessionStore:
    """
    Reads the session token from an ``Authorization: Bearer`` header or the
    session cookie; writes go to the response cookie.
    """

    def __init__(self, request: Request, response: Response):
        self.request = request
        self.response = response
        self.token: Optional[str] = None
        self._loaded = False
        self._session: Optional[SessionRecord] = None
        # Set once clear() has queued a cookie deletion on the response
        self.cleared = False

    def _read_token(self) -> Optional[str]:
        # An explicit header wins over the cookie
        authorization = self.request.headers.get("authorization")
        if authorization:
            parts = authorization.split()
            if len(parts) == 2 and parts[0].lower() == "bearer":
                return parts[1]
        return self.request.cookies.get(settings.session_cookie_name) or None

    def get(self) -> Optional[SessionRecord]:
        if not self._loaded:
            token = self._read_token()
            self._session = decode_session_token(token) if token else None
            self.token = token if self._session else None
            self._loaded = True
        return self._session

    def set(self, session: SessionRecord) -> None:
        self.token = encode_session_token(session)
        self.cleared = False
        self._session = session
        self._loaded = True
        self.response.set_cookie(
            settings.session_cookie_name,
            self.token,
            max_age=settings.session_ttl_hours * 3600,
            httponly=True,
            samesite="lax",
        )

    def clear(self) -> None:
        self.token = None
        self._session = None
        self._loaded = True
        self.response.delete_cookie(settings.session_cookie_name)
        self.cleared = True
