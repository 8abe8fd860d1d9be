#!/usr/bin/env python3
"""
Session Gate for FOLIO

Request-scoped authentication state and the one-shot flash channel. Both
travel in signed cookies (HS256 JWTs), so the server keeps no session
table and a client can only ever see or change its own session.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request, Response
from jose import JWTError, jwt
from pydantic import BaseModel

from cms_errors import Unauthenticated

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
FLASH_LIFETIME = timedelta(minutes=5)


class AuthContext(BaseModel):
    """Who is making the request; username is None when anonymous"""
    username: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return self.username is not None


class Flash(BaseModel):
    """Status message shown on the next rendered page only"""
    kind: str  # error, success
    message: str


class SessionCodec:
    """Signs and reads the session and flash cookies"""

    def __init__(
        self,
        secret_key: str,
        session_hours: int = 24,
        session_cookie: str = "folio_session",
        flash_cookie: str = "folio_flash"
    ):
        self.secret_key = secret_key
        self.session_hours = session_hours
        self.session_cookie = session_cookie
        self.flash_cookie = flash_cookie

    def _encode(self, data: dict, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
        return jwt.encode(to_encode, self.secret_key, algorithm=ALGORITHM)

    def _decode(self, token: Optional[str]) -> Optional[dict]:
        if not token:
            return None
        try:
            return jwt.decode(token, self.secret_key, algorithms=[ALGORITHM])
        except JWTError as e:
            logger.debug(f"Rejected cookie token: {e}")
            return None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def auth_context(self, request: Request) -> AuthContext:
        """Decode the session cookie; missing or bad tokens are anonymous"""
        payload = self._decode(request.cookies.get(self.session_cookie))
        if payload is None:
            return AuthContext()
        username = payload.get("sub")
        if not isinstance(username, str) or not username:
            return AuthContext()
        return AuthContext(username=username)

    def sign_in(self, response: Response, username: str):
        token = self._encode({"sub": username}, timedelta(hours=self.session_hours))
        response.set_cookie(
            self.session_cookie,
            token,
            max_age=self.session_hours * 3600,
            httponly=True,
            samesite="lax"
        )

    def sign_out(self, response: Response):
        response.delete_cookie(self.session_cookie)

    # ------------------------------------------------------------------
    # Flash
    # ------------------------------------------------------------------

    def set_flash(self, response: Response, kind: str, message: str):
        token = self._encode({"kind": kind, "message": message}, FLASH_LIFETIME)
        response.set_cookie(
            self.flash_cookie,
            token,
            max_age=int(FLASH_LIFETIME.total_seconds()),
            httponly=True,
            samesite="lax"
        )

    def read_flash(self, request: Request) -> Optional[Flash]:
        payload = self._decode(request.cookies.get(self.flash_cookie))
        if payload is None:
            return None
        try:
            return Flash(kind=payload["kind"], message=payload["message"])
        except (KeyError, ValueError):
            return None

    def has_flash(self, request: Request) -> bool:
        return self.flash_cookie in request.cookies

    def clear_flash(self, response: Response):
        response.delete_cookie(self.flash_cookie)


def require_signed_in(auth: AuthContext) -> str:
    """Return the signed-in username or stop the request"""
    if not auth.signed_in:
        raise Unauthenticated()
    return auth.username
