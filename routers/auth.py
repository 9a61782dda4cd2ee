import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

import session_service
from dependencies import get_current_user, get_db, get_session_store, limiter, not_logged_in
from points import calculate_user_points
from schemas import LoginRequest, RegisterRequest, SessionRecord, TokenResponse, User, UserWithPoints
from session_store import RequestSessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _token_response(store: RequestSessionStore, session: SessionRecord) -> TokenResponse:
    return TokenResponse(access_token=store.token, session=session)


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(user: RegisterRequest, db: Session = Depends(get_db),
             store: RequestSessionStore = Depends(get_session_store)):
    """
    Registers a new account and logs it in immediately.

    The password is stored as a bcrypt hash. Usernames are unique
    (exact, case-sensitive match).

    Returns:
        TokenResponse: bearer token and session of the new account.

    Raises:
        HTTPException(400): empty fields, password under 8 characters, or username taken.
        HTTPException(500): the account or its session could not be written.
    """
    try:
        session = session_service.register(db, store, user.username, user.password)
    except ValueError as e:
        # covers UsernameTakenError
        raise HTTPException(status_code=400, detail=str(e))
    if session is None:
        logger.error("Registration of %r failed", user.username)
        raise HTTPException(status_code=500, detail="Registration failed")
    return _token_response(store, session)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")  # brute force protection
def login(request: Request, user: LoginRequest, db: Session = Depends(get_db),
          store: RequestSessionStore = Depends(get_session_store)):
    """
    Authenticates a user and issues a new session.

    Any earlier session of the same user is invalidated, so only the
    newest login stays valid. Limited to 10 attempts per minute per client.

    Raises:
        HTTPException(401): unknown username or wrong password.
    """
    session = session_service.login(db, store, user.username, user.password)
    if session is None:
        raise HTTPException(status_code=401, detail="Incorrect username or password")
    return _token_response(store, session)


@router.post("/logout")
def logout(db: Session = Depends(get_db), store: RequestSessionStore = Depends(get_session_store)):
    session_service.logout(db, store)
    return {"detail": "Logged out"}


@router.get("/session", response_model=SessionRecord)
def current_session(db: Session = Depends(get_db), store: RequestSessionStore = Depends(get_session_store)):
    session = session_service.get_current_session(db, store)
    if session is None:
        raise not_logged_in(store)
    return session


@router.get("/me", response_model=UserWithPoints)
def me(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    # Header display: name and current points
    return UserWithPoints(**user.model_dump(), points=calculate_user_points(db, user.username))
