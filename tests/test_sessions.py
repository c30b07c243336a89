"""
Test suite for session management

Tests token signing, the single-session-per-user rule, the session cookie,
and context resolution with the soft expiry margin.
"""

import logging
from datetime import datetime, timezone, timedelta
from http.cookies import SimpleCookie

import jwt
import pytest
from fastapi import Response

from securebank.sessions import RequestContext, SessionCookie, SessionManager, TokenSigner
from securebank.storage import InMemoryStorage, isoformat
from securebank.users import UserStore


SECRET = "test-jwt-secret"


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def users(storage):
    return UserStore(storage)


@pytest.fixture
def manager(storage, users):
    return SessionManager(storage, users, TokenSigner(SECRET))


@pytest.fixture
def user_id(users):
    return users.create_user(
        email="jane@example.com",
        password_hash="hash",
        password_salt="salt",
        encrypted_ssn="00" * 16 + ":" + "11" * 16,
        profile={
            "first_name": "Jane",
            "last_name": "Doe",
            "phone_number": "5555550100",
            "date_of_birth": "1990-01-01",
            "address": "1 Main St",
            "city": "Springfield",
            "state": "IL",
            "zip_code": "62701",
        }
    )


def set_remaining(storage, session, remaining: timedelta):
    storage.update("sessions", session.id, {
        "expires_at": isoformat(datetime.now(timezone.utc) + remaining)
    })


def issued_cookie(response, name="session"):
    """Parse the last Set-Cookie header of a response into a morsel"""
    cookie = SimpleCookie()
    cookie.load(response.headers.getlist("set-cookie")[-1])
    return cookie[name]


class TestTokenSigner:
    """Test session token issuing and verification"""

    def test_round_trip(self):
        signer = TokenSigner(SECRET)
        assert signer.verify(signer.issue(42)) == 42

    def test_claims(self):
        now = datetime.now(timezone.utc)
        token = TokenSigner(SECRET).issue(7, now=now)
        payload = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert payload["userId"] == 7
        assert payload["exp"] - payload["iat"] == 7 * 24 * 60 * 60
        assert payload["jti"]

    def test_tokens_issued_together_differ(self):
        signer = TokenSigner(SECRET)
        now = datetime.now(timezone.utc)
        assert signer.issue(1, now=now) != signer.issue(1, now=now)

    def test_wrong_secret_rejected(self):
        token = TokenSigner("other-secret").issue(1)
        with pytest.raises(jwt.PyJWTError):
            TokenSigner(SECRET).verify(token)

    def test_expired_token_rejected(self):
        token = TokenSigner(SECRET).issue(1, now=datetime.now(timezone.utc) - timedelta(days=8))
        with pytest.raises(jwt.ExpiredSignatureError):
            TokenSigner(SECRET).verify(token)

    def test_token_without_user_id_rejected(self):
        token = jwt.encode({"sub": "1"}, SECRET, algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            TokenSigner(SECRET).verify(token)


class TestSessionCookie:
    """Test setting and clearing the session cookie on a response"""

    def test_issue(self):
        response = Response()
        SessionCookie().issue(response, "abc")
        cookie = issued_cookie(response)
        assert cookie.value == "abc"
        assert cookie["max-age"] == "604800"
        assert cookie["path"] == "/"
        assert cookie["httponly"] is True
        assert cookie["samesite"].lower() == "strict"

    def test_clear(self):
        response = Response()
        SessionCookie().clear(response)
        cookie = issued_cookie(response)
        assert cookie.value in ("", '""')
        assert cookie["max-age"] == "0"
        assert cookie["path"] == "/"
        assert cookie["httponly"] is True
        assert cookie["samesite"].lower() == "strict"

    def test_custom_name_and_lifetime(self):
        response = Response()
        SessionCookie("sid", 60).issue(response, "x")
        cookie = issued_cookie(response, "sid")
        assert cookie.value == "x"
        assert cookie["max-age"] == "60"

    def test_read(self):
        assert SessionCookie().read({"theme": "dark", "session": "a.b.c"}) == "a.b.c"
        assert SessionCookie("sid").read({"session": "a.b.c"}) is None

    def test_empty_value_is_no_token(self):
        assert SessionCookie().read({"session": ""}) is None
        assert SessionCookie().read({}) is None


class TestRequestContext:
    """Test the normalized request context"""

    def test_anonymous_by_default(self):
        ctx = RequestContext(session_token="tok")
        assert ctx.session_token == "tok"
        assert not ctx.is_authenticated

    def test_cookie_changes_go_to_the_response(self):
        response = Response()
        ctx = RequestContext(response=response, cookie=SessionCookie("sid", 60))
        ctx.set_session_cookie("x")
        ctx.clear_session_cookie()
        headers = response.headers.getlist("set-cookie")
        assert len(headers) == 2
        assert headers[0].startswith("sid=x;")
        assert "Max-Age=0" in headers[1]


class TestSessionLifecycle:
    """Test session creation and invalidation"""

    def test_create_session(self, manager, user_id):
        session = manager.create_session(user_id)
        assert session.user_id == user_id
        remaining = session.remaining_lifetime()
        assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)
        assert manager.get_session(session.token).id == session.id

    def test_new_session_replaces_old(self, manager, user_id):
        first = manager.create_session(user_id)
        second = manager.create_session(user_id)
        assert first.token != second.token
        assert manager.get_session(first.token) is None
        assert [s.token for s in manager.get_user_sessions(user_id)] == [second.token]

    def test_delete_session(self, manager, user_id):
        session = manager.create_session(user_id)
        assert manager.delete_session(session.token) is True
        assert manager.delete_session(session.token) is False

    def test_purge_expired(self, storage, manager, user_id):
        session = manager.create_session(user_id)
        set_remaining(storage, session, timedelta(seconds=-5))
        assert manager.purge_expired() == 1
        assert storage.count("sessions") == 0

    def test_purge_keeps_live_sessions(self, manager, user_id):
        manager.create_session(user_id)
        assert manager.purge_expired() == 0


class TestResolveUser:
    """Test identity resolution and the expiry margin"""

    def test_valid_session(self, manager, user_id):
        session = manager.create_session(user_id)
        user = manager.resolve_user(session.token)
        assert user is not None
        assert user.id == user_id

    def test_missing_token(self, manager):
        assert manager.resolve_user(None) is None
        assert manager.resolve_user("") is None

    def test_garbage_token(self, manager):
        assert manager.resolve_user("not-a-jwt") is None

    def test_forged_signature(self, manager, user_id):
        token = TokenSigner("attacker-secret").issue(user_id)
        assert manager.resolve_user(token) is None

    def test_signed_but_unknown_token(self, manager, user_id):
        token = TokenSigner(SECRET).issue(user_id)
        assert manager.resolve_user(token) is None

    def test_revoked_token(self, manager, user_id):
        first = manager.create_session(user_id)
        manager.create_session(user_id)
        assert manager.resolve_user(first.token) is None

    def test_two_minutes_left_is_valid(self, storage, manager, user_id):
        session = manager.create_session(user_id)
        set_remaining(storage, session, timedelta(seconds=120))
        assert manager.resolve_user(session.token) is not None

    def test_thirty_seconds_left_is_invalid_but_kept(self, storage, manager, user_id, caplog):
        session = manager.create_session(user_id)
        set_remaining(storage, session, timedelta(seconds=30))

        with caplog.at_level(logging.WARNING, logger="securebank.sessions"):
            assert manager.resolve_user(session.token) is None

        assert "about to expire" in caplog.text
        assert manager.get_session(session.token) is not None

    def test_expired_row_is_invalid(self, storage, manager, user_id, caplog):
        session = manager.create_session(user_id)
        set_remaining(storage, session, timedelta(seconds=-1))

        with caplog.at_level(logging.WARNING, logger="securebank.sessions"):
            assert manager.resolve_user(session.token) is None

        assert "about to expire" not in caplog.text

    def test_deleted_user(self, storage, manager, user_id):
        session = manager.create_session(user_id)
        storage.delete("users", user_id)
        assert manager.resolve_user(session.token) is None

    def test_resolve_context(self, manager, user_id):
        session = manager.create_session(user_id)
        response = Response()
        ctx = manager.resolve_context({"theme": "dark", "session": session.token}, response)
        assert ctx.is_authenticated
        assert ctx.user.id == user_id
        assert ctx.session_token == session.token
        ctx.set_session_cookie("x")
        assert issued_cookie(response).value == "x"

    def test_resolve_context_without_cookie(self, manager):
        ctx = manager.resolve_context({})
        assert ctx.user is None
        assert ctx.session_token is None
        assert ctx.response.headers.getlist("set-cookie") == []
