"""Bot profile management for the tenant dashboard.

Appearance, model configuration, escalation contacts, API key rotation and
embed tokens. Every mutation is audited exactly once.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from tenantbot.config.settings import get_settings
from tenantbot.core.api_key_crypto import encrypt_secret_for_storage
from tenantbot.core.audit import AuditedAction
from tenantbot.core.database import Database, now_ms
from tenantbot.core.errors import NotFoundError
from tenantbot.core.model_providers import normalize_model_provider
from tenantbot.core.security import (
    assert_can_access_resource,
    assert_is_owner,
    create_embed_token,
    redact_bot_profile_secrets,
    require_bot_profile,
)
from tenantbot.models.schemas import TenantContext

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000

PROFILE_NOT_FOUND = "Bot profile not found. Open the bot profile page once to initialize your bot."

DEFAULT_BOT_PROFILE = {
    "avatar_url": "",
    "bot_names": "My Bot",
    "bot_description": "",
    "msg_placeholder": "Type your message...",
    "primary_color": "#3276EA",
    "font": "inter",
    "theme_mode": "light",
    "header_style": "basic",
    "message_style": "filled",
    "corner_radius": 16,
    "enable_feedback": False,
    "enable_file_upload": False,
    "enable_sound": False,
    "history_reset": "never",
}

MODEL_CONFIG_FIELDS = ("model_provider", "model_id", "system_prompt", "temperature", "max_tokens", "escalation")

def to_dashboard_profile(bot: Dict[str, Any]) -> Dict[str, Any]:
    """Profile for the owner's dashboard: key material removed, has_api_key flag added"""
    profile = {k: v for k, v in bot.items() if k not in ("api_key", "_encrypted_api_key")}
    profile["has_api_key"] = bool(bot.get("api_key") or bot.get("_encrypted_api_key"))
    return profile

class BotProfileManager:
    """Gestiona los perfiles de bot de un tenant"""

    def __init__(self, db: Database):
        self.db = db

    async def _resolve_bot(self, tenant: TenantContext, bot_id: Optional[str]) -> Dict[str, Any]:
        """El bot indicado si el tenant puede acceder, o el primer bot propio"""
        if bot_id:
            bot = await require_bot_profile(self.db, bot_id)
            return assert_can_access_resource(bot, tenant, "Unauthorized: Cannot access this bot")

        bot = await self.db.get_bot_profile_for_user(tenant.user_id)
        if not bot:
            raise NotFoundError(PROFILE_NOT_FOUND)
        return bot

    # ===== Perfil (webchat) =====

    async def get_profile(self, tenant: TenantContext, bot_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        try:
            bot = await self._resolve_bot(tenant, bot_id)
        except NotFoundError:
            if bot_id:
                raise
            return None
        return to_dashboard_profile(bot)

    async def ensure_profile(self, tenant: TenantContext) -> Dict[str, Any]:
        """Devuelve el perfil propio, creándolo con valores por defecto si no existe"""
        existing = await self.db.get_bot_profile_for_user(tenant.user_id)
        if existing:
            return to_dashboard_profile(existing)

        async with AuditedAction(self.db, tenant, "create_bot_profile", "bot_profile") as audit:
            now = now_ms()
            bot = await self.db.create_bot_profile({
                **DEFAULT_BOT_PROFILE,
                "user_id": tenant.user_id,
                "organization_id": tenant.org_id,
                "created_at": now,
                "updated_at": now,
            })
            audit.resource_id = bot["id"]
            audit.after = bot
            logger.info(f"Created default bot profile {bot['id']} for user {tenant.user_id}")
            return to_dashboard_profile(bot)

    async def update_profile(
        self,
        tenant: TenantContext,
        updates: Dict[str, Any],
        bot_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        async with AuditedAction(self.db, tenant, "update_bot_profile", "bot_profile", bot_id) as audit:
            bot = await self._resolve_bot(tenant, bot_id)
            audit.resource_id = bot["id"]
            audit.before = bot

            patch = {**updates, "updated_at": now_ms()}
            updated = await self.db.update_bot_profile(bot["id"], patch)
            audit.after = updated
            return to_dashboard_profile(updated or {**bot, **patch})

    async def list_profiles(self, tenant: TenantContext) -> List[Dict[str, Any]]:
        """Perfiles propios y, con un rol en la organización activa, los de la organización"""
        bots = {bot["id"]: bot for bot in await self.db.list_bot_profiles_for_user(tenant.user_id)}
        if tenant.org_id and tenant.org_role:
            for bot in await self.db.list_bot_profiles_for_organization(tenant.org_id):
                bots.setdefault(bot["id"], bot)
        return [redact_bot_profile_secrets(bot) for bot in bots.values()]

    # ===== Configuración del modelo =====

    async def get_model_config(self, tenant: TenantContext, bot_id: Optional[str] = None) -> Dict[str, Any]:
        bot = await self._resolve_bot(tenant, bot_id)
        config = {field: bot.get(field) for field in MODEL_CONFIG_FIELDS}
        config["id"] = bot["id"]
        config["has_api_key"] = bool(bot.get("api_key") or bot.get("_encrypted_api_key"))
        return config

    async def update_model_config(
        self,
        tenant: TenantContext,
        updates: Dict[str, Any],
        bot_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Actualiza proveedor, modelo, key, prompt y parámetros del bot

        Args:
            updates: Solo los campos enviados; None borra el valor
                (salvo advanced_mode, que selecciona el modo de la pestaña)

        Fuera del modo avanzado, temperature y max_tokens toman sus valores
        por defecto solo si el bot aún no los tiene.
        """
        async with AuditedAction(self.db, tenant, "update_bot_config", "bot_profile", bot_id) as audit:
            bot = await self._resolve_bot(tenant, bot_id)
            audit.resource_id = bot["id"]
            audit.before = bot

            updates = dict(updates)
            advanced_mode = updates.pop("advanced_mode", False)
            patch: Dict[str, Any] = {"updated_at": now_ms()}

            if "model_provider" in updates:
                provider = updates["model_provider"]
                if provider is not None:
                    provider = normalize_model_provider(provider)
                    if not provider:
                        raise ValueError(f"Unsupported model provider: {updates['model_provider']}")
                patch["model_provider"] = provider
            if "model_id" in updates:
                patch["model_id"] = updates["model_id"]
            if "api_key" in updates:
                api_key = updates["api_key"]
                patch["api_key"] = encrypt_secret_for_storage(api_key) if api_key else None
            if "system_prompt" in updates:
                patch["system_prompt"] = updates["system_prompt"]

            for field, default in (("temperature", DEFAULT_TEMPERATURE), ("max_tokens", DEFAULT_MAX_TOKENS)):
                if updates.get(field) is not None:
                    patch[field] = updates[field]
                elif not advanced_mode and bot.get(field) is None:
                    patch[field] = default

            updated = await self.db.update_bot_profile(bot["id"], patch)
            audit.after = updated or {**bot, **patch}
            return {"success": True, "id": bot["id"]}

    async def update_escalation(
        self,
        tenant: TenantContext,
        enabled: bool,
        whatsapp: Optional[str] = None,
        email: Optional[str] = None,
        bot_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Guarda los contactos de escalado

        Raises:
            ValueError: si está activado sin número de WhatsApp o sin email válido
        """
        async with AuditedAction(self.db, tenant, "update_escalation_config", "bot_profile", bot_id) as audit:
            bot = await self._resolve_bot(tenant, bot_id)
            audit.resource_id = bot["id"]
            audit.before = bot

            whatsapp_raw = (whatsapp or "").strip()
            email_raw = (email or "").strip()

            if enabled:
                if not re.sub(r"\D", "", whatsapp_raw):
                    raise ValueError("WhatsApp number is required when escalation is on.")
                if not email_raw or "@" not in email_raw:
                    raise ValueError("Valid email is required when escalation is on.")

            patch = {
                "escalation": {"enabled": enabled, "whatsapp": whatsapp_raw, "email": email_raw},
                "updated_at": now_ms(),
            }
            updated = await self.db.update_bot_profile(bot["id"], patch)
            audit.after = updated or {**bot, **patch}
            return {"success": True, "id": bot["id"], "escalation": patch["escalation"]}

    async def rotate_api_key(self, tenant: TenantContext, api_key: str, bot_id: Optional[str] = None) -> Dict[str, Any]:
        """Reemplaza la API key del bot; solo el dueño puede hacerlo"""
        async with AuditedAction(self.db, tenant, "rotate_api_key", "bot_profile", bot_id) as audit:
            bot = await self._resolve_bot(tenant, bot_id)
            audit.resource_id = bot["id"]
            assert_is_owner(bot, tenant)
            audit.before = {"api_key": bot.get("api_key")}

            encrypted = encrypt_secret_for_storage(api_key)
            await self.db.update_bot_profile(bot["id"], {"api_key": encrypted, "updated_at": now_ms()})
            audit.after = {"api_key": encrypted}
            return {"success": True, "id": bot["id"]}

    # ===== Tokens de embebido =====

    async def generate_embed_token(self, tenant: TenantContext, bot_id: str, domain: str) -> Dict[str, Any]:
        """Emite un token de embebido ligado a un dominio con validez de un año"""
        async with AuditedAction(self.db, tenant, "generate_embed_token", "embed_token") as audit:
            bot = await require_bot_profile(self.db, bot_id)
            assert_is_owner(bot, tenant, "Unauthorized: Only the bot owner can generate embed tokens")

            expires_at = now_ms() + get_settings().embed_token_ttl_ms
            token = await create_embed_token(self.db, bot, domain, expires_at)
            audit.resource_id = token["id"]
            audit.after = {"bot_id": bot_id, "domain": token["domain"], "token": token["token"]}
            return token

    async def revoke_embed_token(self, tenant: TenantContext, embed_token_id: str) -> Dict[str, Any]:
        async with AuditedAction(self.db, tenant, "revoke_embed_token", "embed_token", embed_token_id) as audit:
            token = await self.db.get_embed_token(embed_token_id)
            if not token:
                raise NotFoundError("Embed token not found")
            assert_is_owner(token, tenant)
            audit.before = {"revoked": token.get("revoked")}

            await self.db.update_embed_token(embed_token_id, {"revoked": True})
            audit.after = {"revoked": True}
            return {"success": True}
