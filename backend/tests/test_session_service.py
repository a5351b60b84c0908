"""
Session Manager Tests

Tests for:
- Login outcomes: authenticated, conflict (with action token), rejected
- Terminate via action token, forced login
- Logout compare-and-clear, including expired tokens
- Session validation after eviction, heartbeat, admin force logout
"""

import jwt
import pytest

from services.session_service import DUMMY_PASSWORD_HASH, SessionManager
from utils.auth import create_session_token, decode_session_token
from utils.settings import AuthSettings, get_auth_settings


@pytest.fixture
def settings():
    return get_auth_settings()


@pytest.fixture
def manager(db, settings):
    return SessionManager(db, settings)


async def _active_session(db, client_id):
    doc = await db.clients.find_one({"id": client_id})
    return doc.get("activeSessionId")


class TestLogin:
    """login()"""

    async def test_login_creates_session(self, db, manager, make_client):
        client = await make_client(username="ravi")

        result = await manager.login("ravi", "client-pass")

        assert result.outcome == "authenticated"
        assert result.token
        claims = decode_session_token(result.token, manager.settings)
        assert claims["clientId"] == client["id"]
        assert await _active_session(db, client["id"]) == claims["sessionId"]
        assert result.plan_details["remainingCredits"] == 10
        assert result.plan_details["planName"] == "Standard_Monthly_10"

    async def test_wrong_password_rejected(self, manager, make_client):
        await make_client(username="ravi")

        result = await manager.login("ravi", "nope")

        assert result.outcome == "rejected"
        assert result.reason == "invalid_credentials"
        assert result.token is None

    async def test_unknown_user_rejected(self, manager):
        result = await manager.login("ghost", "whatever")
        assert result.outcome == "rejected"

    async def test_unknown_user_still_checks_a_hash(self, manager, monkeypatch):
        checked = []

        def recording_verify(password, hashed):
            checked.append((password, hashed))
            return False

        monkeypatch.setattr("services.session_service.verify_password", recording_verify)

        result = await manager.login("ghost", "whatever")

        assert result.reason == "invalid_credentials"
        assert checked == [("whatever", DUMMY_PASSWORD_HASH)]

    async def test_disabled_account_rejected(self, db, manager, make_client):
        client = await make_client(username="ravi", is_active=False)

        result = await manager.login("ravi", "client-pass")

        assert result.outcome == "rejected"
        assert result.reason == "account_disabled"
        assert await _active_session(db, client["id"]) is None

    async def test_second_login_conflicts(self, db, manager, make_client):
        client = await make_client(username="ravi")
        first = await manager.login("ravi", "client-pass")
        first_session = await _active_session(db, client["id"])

        second = await manager.login("ravi", "client-pass")

        assert second.outcome == "conflict"
        assert second.action_token
        assert second.token is None
        # Existing session untouched
        assert await _active_session(db, client["id"]) == first_session
        assert await manager.validate_session(first.token) is not None

    async def test_action_token_is_not_a_session_token(self, manager, make_client):
        await make_client(username="ravi")
        await manager.login("ravi", "client-pass")
        conflict = await manager.login("ravi", "client-pass")

        assert await manager.validate_session(conflict.action_token) is None

    async def test_forced_login_replaces_session(self, db, manager, make_client):
        client = await make_client(username="ravi")
        first = await manager.login("ravi", "client-pass")

        forced = await manager.login("ravi", "client-pass", force=True)

        assert forced.outcome == "authenticated"
        assert await manager.validate_session(first.token) is None
        assert await manager.validate_session(forced.token) is not None
        claims = decode_session_token(forced.token, manager.settings)
        assert await _active_session(db, client["id"]) == claims["sessionId"]


class TestTerminateSession:
    """terminate_session()"""

    async def test_terminate_then_login(self, db, manager, make_client):
        client = await make_client(username="ravi")
        first = await manager.login("ravi", "client-pass")
        conflict = await manager.login("ravi", "client-pass")

        assert await manager.terminate_session(conflict.action_token) is True
        assert await _active_session(db, client["id"]) is None
        assert await manager.validate_session(first.token) is None

        again = await manager.login("ravi", "client-pass")
        assert again.outcome == "authenticated"

    async def test_session_token_is_not_an_action_token(self, manager, make_client):
        await make_client(username="ravi")
        first = await manager.login("ravi", "client-pass")

        assert await manager.terminate_session(first.token) is False

    async def test_garbage_token(self, manager):
        assert await manager.terminate_session("not-a-token") is False


class TestLogout:
    """logout()"""

    async def test_logout_clears_matching_session(self, db, manager, make_client):
        client = await make_client(username="ravi")
        login = await manager.login("ravi", "client-pass")

        assert await manager.logout(login.token) is True
        assert await _active_session(db, client["id"]) is None

    async def test_stale_logout_does_not_evict_newer_session(self, db, manager, make_client):
        client = await make_client(username="ravi")
        old = await manager.login("ravi", "client-pass")
        new = await manager.login("ravi", "client-pass", force=True)

        assert await manager.logout(old.token) is False
        assert await manager.validate_session(new.token) is not None
        assert await _active_session(db, client["id"]) is not None

    async def test_expired_token_still_logs_out(self, db, settings, make_client):
        client = await make_client(username="ravi", session_id="sess-123")
        expired_settings = AuthSettings(**{**settings.model_dump(), "session_token_ttl": -60})
        expired = create_session_token(client["id"], "sess-123", expired_settings)
        manager = SessionManager(db, settings)

        with pytest.raises(jwt.ExpiredSignatureError):
            decode_session_token(expired, settings)

        assert await manager.logout(expired) is True
        assert await _active_session(db, client["id"]) is None

    async def test_forged_token_is_ignored(self, db, manager, make_client):
        client = await make_client(username="ravi", session_id="sess-123")
        forged = jwt.encode(
            {"clientId": client["id"], "sessionId": "sess-123", "role": "client"},
            "some-other-secret-that-is-long-enough",
            algorithm="HS256"
        )

        assert await manager.logout(forged) is False
        assert await _active_session(db, client["id"]) == "sess-123"


class TestValidationAndHeartbeat:

    async def test_disabled_account_session_is_dead(self, db, manager, make_client):
        client = await make_client(username="ravi")
        login = await manager.login("ravi", "client-pass")
        await db.clients.update_one({"id": client["id"]}, {"$set": {"isActive": False}})

        assert await manager.validate_session(login.token) is None

    async def test_validated_client_has_no_password(self, manager, make_client):
        await make_client(username="ravi")
        login = await manager.login("ravi", "client-pass")

        validated = await manager.validate_session(login.token)

        assert "passwordHash" not in validated
        assert validated["sessionId"]

    async def test_heartbeat_updates_activity(self, db, manager, make_client):
        client = await make_client(username="ravi")
        login = await manager.login("ravi", "client-pass")

        seen = await manager.heartbeat(login.token)

        assert seen is not None
        doc = await db.clients.find_one({"id": client["id"]})
        assert doc["lastActivityAt"] is not None

    async def test_heartbeat_after_eviction(self, manager, make_client):
        await make_client(username="ravi")
        old = await manager.login("ravi", "client-pass")
        await manager.login("ravi", "client-pass", force=True)

        assert await manager.heartbeat(old.token) is None


class TestAdminForceLogout:

    async def test_force_logout(self, db, manager, make_client):
        client = await make_client(username="ravi")
        login = await manager.login("ravi", "client-pass")

        assert await manager.force_logout_by_admin(client["id"]) is True
        assert await manager.validate_session(login.token) is None

    async def test_force_logout_unknown_client(self, manager):
        assert await manager.force_logout_by_admin("missing") is False
