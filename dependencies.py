from fastapi import Depends, HTTPException, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

import session_service
from database import SessionLocal
from schemas import User
from session_store import RequestSessionStore


# --- Database Dependency ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# --- Session Dependencies ---
def get_session_store(request: Request, response: Response) -> RequestSessionStore:
    return RequestSessionStore(request, response)


def not_logged_in(store: RequestSessionStore) -> HTTPException:
    """
    401 for a request without a valid session.

    Raising replaces the injected response, so a cookie deletion queued by an
    expiry logout is copied onto the error response.
    """
    headers = None
    if store.cleared:
        headers = {"set-cookie": store.response.headers.getlist("set-cookie")[-1]}
    return HTTPException(status_code=401, detail="Not logged in", headers=headers)


def get_current_user(db: Session = Depends(get_db), store: RequestSessionStore = Depends(get_session_store)) -> User:
    """Resolve the logged-in user from the session token or answer 401."""
    user = session_service.get_current_user(db, store)
    if user is None:
        raise not_logged_in(store)
    return user


# --- Rate Limiter ---
limiter = Limiter(key_func=get_remote_address)
