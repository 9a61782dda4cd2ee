"""
Registration, login, logout and session validity.

All functions work on an explicit database session and an explicit
``SessionStore``; ``now`` can be injected so expiry is testable. Failures
never raise past this module except for input validation: a failed lookup
or write simply means "not logged in".
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

import repository
from auth_utils import hash_password, verify_password
from config import settings
from schemas import MIN_PASSWORD_LENGTH, SessionRecord, User
from session_store import SessionStore

logger = logging.getLogger(__name__)


class UsernameTakenError(ValueError):
    pass


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def validate_registration(username: str, password: str) -> str:
    """
    Returns the username as typed or raises ValueError with a user-facing message.

    Blank checks look at the stripped value, but the stored name is not
    stripped: login matches it exactly.
    """
    username = username or ""
    if not username.strip():
        raise ValueError("Please enter a username")
    if not password or not password.strip():
        raise ValueError("Please enter a password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return username


def register(db: Session, store: SessionStore, username: str, password: str,
             now: Optional[datetime] = None) -> Optional[SessionRecord]:
    """
    Create an account and log it in right away.

    Raises:
        ValueError: invalid input.
        UsernameTakenError: the username already exists (exact match).

    Returns:
        The new session, or None if the account or session could not be written.
    """
    username = validate_registration(username, password)
    if repository.get_user_by_username(db, username) is not None:
        logger.info("Registration rejected: username %r already taken", username)
        raise UsernameTakenError("This username is already taken. Please choose another one.")

    user = repository.create_user(db, username, hash_password(password))
    if user is None:
        return None
    logger.info("Registered user %s (%r)", user.id, user.username)
    return login(db, store, username, password, now=now)


def login(db: Session, store: SessionStore, username: str, password: str,
          now: Optional[datetime] = None) -> Optional[SessionRecord]:
    creds = repository.get_user_credentials(db, username)
    if creds is None or not verify_password(password, creds.password):
        logger.info("Login failed for %r", username)
        return None

    # One active session per user
    repository.delete_sessions_for_user(db, creds.id)

    now = _now(now)
    expires_at = now + timedelta(hours=settings.session_ttl_hours)
    session = repository.create_session(db, creds, expires_at=expires_at, login_time=now)
    if session is None:
        logger.error("Session creation failed for user %s", creds.id)
        return None

    store.set(session)
    return session


def logout(db: Session, store: SessionStore) -> None:
    stored = store.get()
    if stored is not None:
        repository.delete_session(db, stored.id)
    store.clear()


def get_current_session(db: Session, store: SessionStore,
                        now: Optional[datetime] = None) -> Optional[SessionRecord]:
    stored = store.get()
    if stored is None:
        return None

    if stored.is_expired(_now(now)):
        logger.info("Session %s expired at %s", stored.id, stored.expires_at.isoformat())
        logout(db, store)
        return None

    session = repository.get_session(db, stored.id, stored.user_id)
    if session is None:
        logger.info("Session %s no longer exists for user %s", stored.id, stored.user_id)
        logout(db, store)
        return None
    return session


def get_current_user(db: Session, store: SessionStore, now: Optional[datetime] = None) -> Optional[User]:
    session = get_current_session(db, store, now=now)
    if session is None:
        return None
    return repository.get_user_by_id(db, session.user_id)
