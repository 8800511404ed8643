"""
Auth context: who is signed in, and who wants to know when that changes.

Sessions are issued by the hosted platform. Access tokens are HS256 JWTs
signed with the project's JWT secret, so they can be verified locally.
"""

import logging
import os
from typing import Callable, List, Optional

from fastapi import Header, HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from database import Backend
from errors import Unauthenticated
from schemas import Identity, Session

logger = logging.getLogger(__name__)

SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "super-secret-jwt-token-change")
ALGORITHM = "HS256"
AUDIENCE = "authenticated"

INITIAL_SESSION = "INITIAL_SESSION"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

AuthListener = Callable[[str, Optional[Session]], None]


def decode_access_token(token: str) -> Session:
    """Verify a platform access token and return the session it represents."""
    payload = jwt.decode(token, SUPABASE_JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE)
    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("Token has no subject")
    return Session(
        access_token=token,
        expires_at=payload.get("exp"),
        user=Identity(id=user_id, email=payload.get("email")),
    )


class AuthContext:
    def __init__(self, backend: Backend, session: Optional[Session] = None):
        self.backend = backend
        self._session = session
        self._listeners: List[AuthListener] = []
        self.loading = session is None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user(self) -> Optional[Identity]:
        return self._session.user if self._session else None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str):
        for listener in list(self._listeners):
            listener(event, self._session)

    def restore(self, access_token: Optional[str] = None) -> Optional[Session]:
        """Initial session restore. A missing token leaves the context anonymous."""
        try:
            self._session = decode_access_token(access_token) if access_token else None
        finally:
            self.loading = False
        self._emit(INITIAL_SESSION)
        return self._session

    def sign_in(self, email: str, password: str) -> Session:
        session = self.backend.sign_in(email, password)
        self._session = session
        self.loading = False
        logger.info("Signed in as %s", session.user.email or session.user.id)
        self._emit(SIGNED_IN)
        return session

    def sign_out(self):
        if self._session is not None:
            self.backend.sign_out(self._session.access_token)
            logger.info("Signed out %s", self._session.user.id)
        self._session = None
        self._emit(SIGNED_OUT)

    def require_user(self) -> Identity:
        if self.user is None:
            raise Unauthenticated()
        return self.user

    def writer(self) -> Backend:
        """Backend handle carrying the signed-in identity's credentials."""
        self.require_user()
        return self.backend.for_token(self._session.access_token)


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return authorization.split(" ", 1)[1]


def restore_context(backend: Backend, token: Optional[str]) -> AuthContext:
    context = AuthContext(backend)
    try:
        context.restore(token)
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    return context
