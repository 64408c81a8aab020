import pytest

from tenantbot.core.api_key_crypto import ENCRYPTED_PREFIX, decrypt_secret_from_storage
from tenantbot.core.bot_profiles import PROFILE_NOT_FOUND, BotProfileManager
from tenantbot.core.errors import NotFoundError, UnauthorizedError
from tenantbot.core.security import REDACTED, hash_domain_to_hex16


@pytest.fixture
def manager(db):
    return BotProfileManager(db)


def _audits(supabase, action):
    return [row for row in supabase.rows("audit_logs") if row["action"] == action]


class TestProfile:
    async def test_get_profile_without_bot(self, manager, owner):
        assert await manager.get_profile(owner) is None

    async def test_ensure_profile_creates_defaults_once(self, manager, supabase, owner):
        profile = await manager.ensure_profile(owner)
        assert profile["bot_names"] == "My Bot"
        assert profile["user_id"] == "user-1"
        assert profile["has_api_key"] is False

        again = await manager.ensure_profile(owner)
        assert again["id"] == profile["id"]
        assert len(supabase.rows("bot_profiles")) == 1
        assert len(_audits(supabase, "create_bot_profile")) == 1

    async def test_dashboard_profile_hides_key_material(self, manager, make_bot, owner):
        make_bot(api_key="enc:v1:abc")
        profile = await manager.get_profile(owner)
        assert "api_key" not in profile
        assert "_encrypted_api_key" not in profile
        assert profile["has_api_key"] is True

    async def test_update_profile_is_audited_with_redaction(self, manager, supabase, make_bot, owner):
        bot = make_bot()
        updated = await manager.update_profile(owner, {"primary_color": "#000000"}, bot["id"])
        assert updated["primary_color"] == "#000000"

        [audit] = _audits(supabase, "update_bot_profile")
        assert audit["status"] == "success"
        assert audit["resource_id"] == bot["id"]
        assert audit["changes"]["before"]["api_key"] == REDACTED
        assert audit["changes"]["after"]["primary_color"] == "#000000"

    async def test_stranger_is_denied_and_audited(self, manager, supabase, make_bot, stranger):
        bot = make_bot()
        with pytest.raises(UnauthorizedError):
            await manager.update_profile(stranger, {"primary_color": "#000000"}, bot["id"])

        [audit] = _audits(supabase, "update_bot_profile")
        assert audit["status"] == "denied"
        assert audit["user_id"] == "user-2"
        assert supabase.rows("bot_profiles")[0]["primary_color"] == "#3276EA"

    async def test_update_without_any_bot(self, manager, owner):
        with pytest.raises(NotFoundError) as exc:
            await manager.update_profile(owner, {"font": "roboto"})
        assert exc.value.message == PROFILE_NOT_FOUND

    async def test_list_profiles_includes_organization_bots(self, manager, make_bot, org_member):
        make_bot(user_id="user-1", organization_id="org-1")
        make_bot(user_id="user-3", organization_id=None)
        make_bot(user_id="user-9", organization_id="org-2")

        profiles = await manager.list_profiles(org_member)
        assert {p["user_id"] for p in profiles} == {"user-1", "user-3"}
        assert all(p["api_key"] == REDACTED for p in profiles)


class TestModelConfig:
    async def test_update_normalizes_provider_and_encrypts_key(self, manager, supabase, make_bot, owner):
        bot = make_bot(temperature=None, max_tokens=None)
        await manager.update_model_config(owner, {"model_provider": "google", "api_key": "g-key"}, bot["id"])

        stored = supabase.rows("bot_profiles")[0]
        assert stored["model_provider"] == "Google AI"
        assert stored["api_key"].startswith(ENCRYPTED_PREFIX)
        assert decrypt_secret_from_storage(stored["api_key"]) == "g-key"
        assert stored["temperature"] == 0.7
        assert stored["max_tokens"] == 1000

        [audit] = _audits(supabase, "update_bot_config")
        assert audit["changes"]["after"]["api_key"] == REDACTED

    async def test_general_tab_keeps_existing_parameters(self, manager, supabase, make_bot, owner):
        bot = make_bot(temperature=0.2, max_tokens=300)
        await manager.update_model_config(owner, {"model_id": "gpt-4o"}, bot["id"])

        stored = supabase.rows("bot_profiles")[0]
        assert stored["model_id"] == "gpt-4o"
        assert stored["temperature"] == 0.2
        assert stored["max_tokens"] == 300

    async def test_advanced_mode_sets_parameters(self, manager, supabase, make_bot, owner):
        bot = make_bot(temperature=None, max_tokens=None)
        await manager.update_model_config(
            owner, {"temperature": 1.3, "advanced_mode": True}, bot["id"]
        )
        stored = supabase.rows("bot_profiles")[0]
        assert stored["temperature"] == 1.3
        assert stored["max_tokens"] is None

    async def test_unsupported_provider(self, manager, supabase, make_bot, owner):
        bot = make_bot()
        with pytest.raises(ValueError, match="Unsupported model provider"):
            await manager.update_model_config(owner, {"model_provider": "mistral"}, bot["id"])
        assert _audits(supabase, "update_bot_config")[0]["status"] == "error"

    async def test_get_model_config(self, manager, make_bot, owner):
        bot = make_bot()
        config = await manager.get_model_config(owner, bot["id"])
        assert config["model_provider"] == "OpenAI"
        assert config["has_api_key"] is True
        assert "api_key" not in config


class TestEscalationAndKeys:
    async def test_escalation_requires_contacts_when_enabled(self, manager, make_bot, owner):
        bot = make_bot()
        with pytest.raises(ValueError, match="WhatsApp number is required"):
            await manager.update_escalation(owner, True, whatsapp="  ", email="a@b.co", bot_id=bot["id"])
        with pytest.raises(ValueError, match="Valid email is required"):
            await manager.update_escalation(owner, True, whatsapp="+1 555", email="nope", bot_id=bot["id"])

    async def test_escalation_saved_trimmed(self, manager, supabase, make_bot, owner):
        bot = make_bot()
        result = await manager.update_escalation(owner, True, whatsapp=" +1 555 ", email=" a@b.co ", bot_id=bot["id"])
        assert result["escalation"] == {"enabled": True, "whatsapp": "+1 555", "email": "a@b.co"}
        assert supabase.rows("bot_profiles")[0]["escalation"] == result["escalation"]

    async def test_disabled_escalation_needs_no_contacts(self, manager, make_bot, owner):
        bot = make_bot()
        result = await manager.update_escalation(owner, False, bot_id=bot["id"])
        assert result["escalation"]["enabled"] is False

    async def test_rotate_api_key_owner_only(self, manager, supabase, make_bot, owner, org_member):
        bot = make_bot()
        with pytest.raises(UnauthorizedError):
            await manager.rotate_api_key(org_member, "sk-new", bot["id"])
        assert supabase.rows("bot_profiles")[0]["api_key"] == "sk-test"

        await manager.rotate_api_key(owner, "sk-new", bot["id"])
        assert decrypt_secret_from_storage(supabase.rows("bot_profiles")[0]["api_key"]) == "sk-new"
        assert [a["status"] for a in _audits(supabase, "rotate_api_key")] == ["denied", "success"]


class TestEmbedTokens:
    async def test_generate_embed_token(self, manager, supabase, make_bot, owner):
        bot = make_bot()
        token = await manager.generate_embed_token(owner, bot["id"], "https://Example.com/shop")

        assert token["domain"] == "example.com"
        assert token["domain_hash"] == hash_domain_to_hex16("example.com")
        stored = supabase.rows("embed_tokens")[0]
        assert abs(stored["expires_at"] - stored["created_at"] - 365 * 24 * 60 * 60 * 1000) < 1000

        [audit] = _audits(supabase, "generate_embed_token")
        assert audit["changes"]["after"]["token"] == REDACTED

    async def test_generate_requires_owner(self, manager, make_bot, org_member):
        bot = make_bot()
        with pytest.raises(UnauthorizedError, match="Only the bot owner"):
            await manager.generate_embed_token(org_member, bot["id"], "example.com")

    async def test_generate_rejects_bad_domain(self, manager, make_bot, owner):
        bot = make_bot()
        with pytest.raises(ValueError):
            await manager.generate_embed_token(owner, bot["id"], "   ")

    async def test_revoke(self, manager, supabase, make_bot, owner, stranger):
        bot = make_bot()
        token = await manager.generate_embed_token(owner, bot["id"], "example.com")

        with pytest.raises(UnauthorizedError):
            await manager.revoke_embed_token(stranger, token["id"])
        assert await manager.revoke_embed_token(owner, token["id"]) == {"success": True}
        assert supabase.rows("embed_tokens")[0]["revoked"] is True

        with pytest.raises(NotFoundError):
            await manager.revoke_embed_token(owner, "missing")
