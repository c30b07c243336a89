"""
Authentication Module

Sign-up, login and logout on top of the user store and session manager.
Credential failures are uninformative: an unknown email and a
wrong password produce the same error.
"""

from typing import Any, Dict, Optional

from .encryption import SSNCipher
from .errors import ConflictError, InternalError, UnauthorizedError
from .logging_config import get_logger, log_action
from .sessions import RequestContext, SessionManager
from .storage import DuplicateRecordError
from .users import PasswordHasher, UserStore


logger = get_logger("securebank.auth")

INVALID_CREDENTIALS = "Invalid credentials"


class AuthService:
    """Credential and session lifecycle"""

    def __init__(
        self,
        users: UserStore,
        sessions: SessionManager,
        ssn_cipher: SSNCipher,
        password_hasher: Optional[PasswordHasher] = None
    ):
        self.users = users
        self.sessions = sessions
        self.ssn_cipher = ssn_cipher
        self.password_hasher = password_hasher or PasswordHasher()

    def signup(self, profile, ctx: RequestContext) -> Dict[str, Any]:
        """
        Register a new user and start their session.

        Args:
            profile: Schema-validated sign-up input (email already lower-cased,
                state upper-cased, date of birth normalized)
            ctx: Request context used to set the session cookie

        Returns:
            {"user": sanitized user, "token": session token}
        """
        if self.users.get_user_by_email(profile.email):
            raise ConflictError("User already exists")

        salt = self.password_hasher.generate_salt()
        password_hash = self.password_hasher.hash_password(profile.password, salt)
        encrypted_ssn = self.ssn_cipher.encrypt(profile.ssn)

        try:
            self.users.create_user(
                email=profile.email,
                password_hash=password_hash,
                password_salt=salt,
                encrypted_ssn=encrypted_ssn,
                profile={
                    "first_name": profile.first_name,
                    "last_name": profile.last_name,
                    "phone_number": profile.phone_number,
                    "date_of_birth": profile.date_of_birth,
                    "address": profile.address,
                    "city": profile.city,
                    "state": profile.state,
                    "zip_code": profile.zip_code,
                }
            )
        except DuplicateRecordError:
            raise ConflictError("User already exists")

        user = self.users.get_user_by_email(profile.email)
        if user is None:
            raise InternalError("Failed to create user")

        session = self.sessions.create_session(user.id)
        ctx.set_session_cookie(session.token)

        log_action(logger, "info", "User signed up", user_id=user.id,
                   action="signup", resource="auth")

        return {"user": user.sanitized(), "token": session.token}

    def login(self, email: str, password: str, ctx: RequestContext) -> Dict[str, Any]:
        """Authenticate and replace any existing session of the user"""
        user = self.users.get_user_by_email(email.strip().lower())

        if user is None or not self.password_hasher.verify_password(
                password, user.password_salt, user.password_hash):
            log_action(logger, "warning", "Authentication failed",
                       action="login_failed", resource="auth")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        session = self.sessions.create_session(user.id)
        ctx.set_session_cookie(session.token)

        log_action(logger, "info", "User authenticated successfully", user_id=user.id,
                   action="login", resource="auth")

        return {"user": user.sanitized(), "token": session.token}

    def logout(self, ctx: RequestContext) -> Dict[str, Any]:
        """
        End the current session.

        Without an authenticated identity this is a soft failure, not an error.
        """
        if ctx.user is None:
            return {"success": False, "message": "No active session"}

        token = ctx.session_token
        deleted = False
        if token:
            deleted = self.sessions.delete_session(token)

        ctx.clear_session_cookie()

        log_action(logger, "info", "User logged out", user_id=ctx.user.id,
                   action="logout", resource="auth", extra={"session_deleted": deleted})

        return {
            "success": deleted,
            "message": "Logged out successfully" if deleted else "Failed to invalidate session",
        }
