import hashlib

import pytest

from tenantbot.config.settings import get_settings
from tenantbot.core.errors import (
    ConversationClosedError,
    DomainMismatchError,
    InvalidSessionError,
    NotFoundError,
    RateLimitedError,
    SessionRevokedError,
    UnauthorizedError,
)
from tenantbot.core.security import create_embed_token
from tenantbot.core.widget import WidgetSessionManager, utc_day_key


@pytest.fixture
def widget(db):
    return WidgetSessionManager(db)


@pytest.fixture
def bot(make_bot):
    return make_bot()


async def _embed_token(db, bot, domain="example.com"):
    return (await create_embed_token(db, bot, domain, expires_at=10 ** 15))["token"]


class TestSessions:
    async def test_public_profile_is_redacted(self, widget, bot):
        profile = await widget.get_public_bot_profile("org-1", bot["id"])
        assert profile["id"] == bot["id"]
        assert profile["bot_names"] == "Support Bot"
        assert "api_key" not in profile
        assert "system_prompt" not in profile

    async def test_profile_requires_matching_organization(self, widget, bot):
        with pytest.raises(NotFoundError, match="organization mismatch"):
            await widget.get_public_bot_profile("org-2", bot["id"])

    async def test_create_session(self, widget, supabase, bot):
        result = await widget.create_session("org-1", bot["id"], user_agent="Mozilla/5.0", ip_address="1.2.3.4")

        assert result["visitor_id"].startswith("visitor_")
        [conversation] = supabase.rows("conversations")
        assert conversation["id"] == result["conversation_id"]
        assert conversation["integration"] == "embed"
        assert conversation["topic"] == "Visitor Chat"
        assert conversation["user_id"] == "user-1"
        assert conversation["visitor_id"] == result["visitor_id"]

        [session] = supabase.rows("visitor_sessions")
        assert session["session_token"] == result["session_token"]
        assert session["conversation_id"] == result["conversation_id"]
        assert session["user_agent_hash"] == hashlib.sha256(b"Mozilla/5.0").hexdigest()
        assert session["ip_address"] == "1.2.3.4"

    async def test_create_session_keeps_given_visitor(self, widget, bot):
        result = await widget.create_session("org-1", bot["id"], visitor_id="visitor-abc")
        assert result["visitor_id"] == "visitor-abc"

    async def test_create_session_with_embed_token(self, widget, db, bot):
        token = await _embed_token(db, bot)
        result = await widget.create_session("org-1", bot["id"], embed_token=token, current_domain="https://example.com")
        assert result["session_token"]

        with pytest.raises(DomainMismatchError):
            await widget.create_session("org-1", bot["id"], embed_token=token, current_domain="evil.com")

    async def test_embed_token_for_another_bot(self, widget, db, make_bot, bot):
        other = make_bot()
        token = await _embed_token(db, other)
        with pytest.raises(UnauthorizedError, match="Wrong bot"):
            await widget.create_session("org-1", bot["id"], embed_token=token, current_domain="example.com")

    async def test_validate_embed_token_counts_requests(self, widget, db, supabase, bot):
        token = await _embed_token(db, bot)
        result = await widget.validate_embed_token(token, "example.com")

        assert result["valid"] is True
        assert result["bot_id"] == bot["id"]
        assert "api_key" not in result["bot_profile"]
        assert supabase.rows("embed_tokens")[0]["requests_today"] == 1


class TestMessages:
    @pytest.fixture
    async def session(self, widget, bot):
        return await widget.create_session("org-1", bot["id"])

    async def test_send_and_list(self, widget, supabase, session):
        result = await widget.send_message(session["conversation_id"], session["session_token"], "Hello")
        assert result["success"] is True

        [message] = supabase.rows("messages")
        assert message["visitor_id"] == session["visitor_id"]
        assert message["role"] == "user"

        messages = await widget.list_messages(session["conversation_id"], session["session_token"])
        assert [(m["role"], m["content"]) for m in messages] == [("user", "Hello")]
        assert set(messages[0]) == {"id", "role", "content", "created_at"}

        [audit] = supabase.rows("audit_logs")
        assert audit["status"] == "success"
        assert audit["user_id"] == f"visitor:{session['visitor_id']}"

    async def test_invalid_session_is_audited_as_denied(self, widget, supabase, session):
        with pytest.raises(InvalidSessionError):
            await widget.send_message(session["conversation_id"], "bogus", "Hello")

        [audit] = supabase.rows("audit_logs")
        assert audit["status"] == "denied"
        assert audit["user_id"] == "unauthenticated"
        assert audit["error_message"] == "Invalid session token"

    async def test_session_cannot_reach_another_conversation(self, widget, bot, session):
        other = await widget.create_session("org-1", bot["id"])
        with pytest.raises(UnauthorizedError, match="Wrong visitor"):
            await widget.send_message(other["conversation_id"], session["session_token"], "Hello")

    async def test_rate_limit(self, widget, monkeypatch, session):
        monkeypatch.setenv("PUBLIC_MESSAGE_RATE_LIMIT", "2")
        get_settings.cache_clear()

        for _ in range(2):
            await widget.send_message(session["conversation_id"], session["session_token"], "Hello")
        with pytest.raises(RateLimitedError):
            await widget.send_message(session["conversation_id"], session["session_token"], "Hello")

    async def test_status_and_end_session(self, widget, supabase, session):
        status = await widget.get_conversation_status(session["conversation_id"], session["session_token"])
        assert status["exists"] is True
        assert status["is_active"] is True

        assert await widget.end_session(session["conversation_id"], session["session_token"]) == {"success": True}
        assert supabase.rows("conversations")[0]["status"] == "closed"

        with pytest.raises(SessionRevokedError):
            await widget.send_message(session["conversation_id"], session["session_token"], "Hello")
        status = await widget.get_conversation_status(session["conversation_id"], session["session_token"])
        assert status == {"exists": False, "is_active": False}

    async def test_closed_conversation_rejects_messages(self, widget, supabase, session):
        supabase.rows("conversations")[0]["status"] = "closed"
        with pytest.raises(ConversationClosedError):
            await widget.send_message(session["conversation_id"], session["session_token"], "Hello")
        assert supabase.rows("audit_logs")[0]["status"] == "error"

        status = await widget.get_conversation_status(session["conversation_id"], session["session_token"])
        assert status["exists"] is True
        assert status["is_active"] is False


class TestLeadEvents:
    @pytest.fixture
    async def session(self, widget, bot):
        return await widget.create_session("org-1", bot["id"])

    async def test_event_is_recorded_once_per_day(self, widget, supabase, session):
        args = (session["conversation_id"], session["session_token"], "lead_whatsapp_click", "https://wa.me/1")

        assert await widget.track_event(*args) == {"success": True, "deduped": False}
        assert await widget.track_event(*args) == {"success": True, "deduped": True}

        [event] = supabase.rows("business_events")
        assert event["dedupe_key"].startswith(f"{session['conversation_id']}:lead_whatsapp_click:")
        assert event["dedupe_key"].endswith(utc_day_key(event["created_at"]))

    async def test_only_embed_conversations_count(self, widget, supabase, session):
        supabase.rows("conversations")[0]["integration"] = "playground"
        result = await widget.track_event(session["conversation_id"], session["session_token"], "lead_email_click")
        assert result["skipped"] is True
        assert supabase.rows("business_events") == []


def test_utc_day_key():
    assert utc_day_key(0) == "1970-01-01"
    assert utc_day_key(86_400_000 - 1) == "1970-01-01"
    assert utc_day_key(86_400_000) == "1970-01-02"
