"""
Session Management Module

Signed session tokens, the single-session-per-user invariant, the session
cookie contract, and per-request context resolution with a soft expiry
margin. Expired sessions are not swept in the background; they are treated
as invalid on lookup.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import List, Mapping, Optional

import jwt
from fastapi import Response

from .logging_config import get_logger
from .storage import StorageError, StorageInterface, StorageRecord, isoformat
from .users import User, UserStore


logger = get_logger("securebank.sessions")

SESSION_COOKIE_NAME = "session"
SESSION_TTL = timedelta(days=7)
EXPIRY_MARGIN = timedelta(seconds=60)


@dataclass
class Session(StorageRecord):
    """Authentication session owned by a user"""
    user_id: int
    token: str
    expires_at: datetime

    @classmethod
    def from_dict(cls, data) -> 'Session':
        session = super().from_dict(data)
        if isinstance(session.expires_at, str):
            session.expires_at = datetime.fromisoformat(session.expires_at)
        return session

    def remaining_lifetime(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return self.expires_at - now


class SessionCookie:
    """Sets and clears the session cookie on a response"""

    def __init__(self, name: str = SESSION_COOKIE_NAME, max_age: int = int(SESSION_TTL.total_seconds())):
        self.name = name
        self.max_age = max_age

    def read(self, cookies: Mapping[str, str]) -> Optional[str]:
        return cookies.get(self.name) or None

    def issue(self, response: Response, token: str) -> None:
        response.set_cookie(
            self.name,
            token,
            max_age=self.max_age,
            path="/",
            httponly=True,
            samesite="strict",
        )

    def clear(self, response: Response) -> None:
        # Starlette emits Max-Age=0 with an empty value
        response.delete_cookie(self.name, path="/", httponly=True, samesite="strict")


@dataclass
class RequestContext:
    """
    Normalized per-request context.

    Built once at the transport boundary from the request cookies: the
    resolved identity (or None), the presented session token, and the
    response that session cookie changes are written to.
    """
    user: Optional[User] = None
    session_token: Optional[str] = None
    response: Response = field(default_factory=Response)
    cookie: SessionCookie = field(default_factory=SessionCookie)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def set_session_cookie(self, token: str) -> None:
        self.cookie.issue(self.response, token)

    def clear_session_cookie(self) -> None:
        self.cookie.clear(self.response)


class TokenSigner:
    """Issues and verifies HS256-signed session tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl: timedelta = SESSION_TTL):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    def issue(self, user_id: int, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            # Random id so two tokens issued in the same second differ
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> int:
        """Return the user id of a valid token; raises jwt.PyJWTError otherwise"""
        payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        user_id = payload.get("userId")
        if not isinstance(user_id, int):
            raise jwt.InvalidTokenError("Token has no user id")
        return user_id


class SessionManager:
    """Creates, invalidates and resolves sessions"""

    def __init__(
        self,
        storage: StorageInterface,
        users: UserStore,
        signer: TokenSigner,
        ttl: timedelta = SESSION_TTL,
        expiry_margin: timedelta = EXPIRY_MARGIN,
        cookie: Optional[SessionCookie] = None
    ):
        self.storage = storage
        self.users = users
        self.signer = signer
        self.ttl = ttl
        self.expiry_margin = expiry_margin
        self.cookie = cookie or SessionCookie(max_age=int(ttl.total_seconds()))
        self.table_name = "sessions"

    def create_session(self, user_id: int) -> Session:
        """
        Issue a new session for a user.

        Every existing session of the user is deleted first, so logging in
        from a second location revokes the first location's token.
        """
        self.delete_user_sessions(user_id)

        now = datetime.now(timezone.utc)
        token = self.signer.issue(user_id, now=now)
        data = {
            "user_id": user_id,
            "token": token,
            "expires_at": isoformat(now + self.ttl),
            "created_at": isoformat(now),
        }
        session_id = self.storage.insert(self.table_name, data)
        data["id"] = session_id
        return Session.from_dict(data)

    def delete_user_sessions(self, user_id: int) -> int:
        return self.storage.delete_where(self.table_name, {"user_id": user_id})

    def delete_session(self, token: str) -> bool:
        return self.storage.delete_where(self.table_name, {"token": token}) > 0

    def get_session(self, token: str) -> Optional[Session]:
        data = self.storage.find_one(self.table_name, {"token": token})
        if data:
            return Session.from_dict(data)
        return None

    def get_user_sessions(self, user_id: int) -> List[Session]:
        return [Session.from_dict(data) for data in self.storage.find(self.table_name, {"user_id": user_id})]

    def resolve_user(self, token: Optional[str]) -> Optional[User]:
        """
        Resolve the user behind a session token.

        Never raises: a bad signature, an unknown token, or a session within
        the expiry margin all yield None. Near-expiry rows are left in place.
        """
        if not token:
            return None

        try:
            user_id = self.signer.verify(token)
            session = self.get_session(token)
            if session is None:
                return None

            remaining = session.remaining_lifetime()
            if remaining > self.expiry_margin:
                return self.users.get_user(user_id)
            if remaining > timedelta(0):
                logger.warning("Session about to expire, treating as invalid")
            return None
        except (jwt.PyJWTError, StorageError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Session token rejected: {e}")
            return None

    def resolve_context(self, cookies: Mapping[str, str],
                        response: Optional[Response] = None) -> RequestContext:
        """Build the request context from the request cookies"""
        token = self.cookie.read(cookies)
        return RequestContext(
            user=self.resolve_user(token),
            session_token=token,
            response=response if response is not None else Response(),
            cookie=self.cookie
        )

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete sessions past their expiry; for operator-scheduled maintenance"""
        now = now or datetime.now(timezone.utc)
        removed = 0
        for data in self.storage.find(self.table_name, {}):
            if datetime.fromisoformat(data["expires_at"]) <= now:
                if self.storage.delete(self.table_name, data["id"]):
                    removed += 1
        return removed
