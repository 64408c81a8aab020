"""Public widget sessions.

Every operation here is reachable without a user login: it is authorized by
a visitor session token, and session creation for deployed widgets by a
domain-bound embed token.
"""
import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tenantbot.config.settings import get_settings
from tenantbot.core.audit import log_audit
from tenantbot.core.database import Database, now_ms
from tenantbot.core.errors import (
    ConversationClosedError,
    NotFoundError,
    TenantBotError,
    UnauthorizedError,
)
from tenantbot.core.security import (
    assert_conversation_owned_by_visitor_session,
    assert_rate_limit_messages_per_window,
    create_visitor_session,
    require_valid_embed_token,
    require_valid_visitor_session,
    to_public_bot_profile,
)
from tenantbot.models.schemas import AuditStatus, ConversationStatus, Integration

logger = logging.getLogger(__name__)

def hash_user_agent(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    return hashlib.sha256(user_agent.encode("utf-8")).hexdigest()

def generate_visitor_id() -> str:
    return f"visitor_{now_ms()}_{uuid.uuid4().hex[:9]}"

def utc_day_key(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")

class WidgetSessionManager:
    """Operaciones públicas del widget: perfil, sesiones, mensajes y eventos"""

    def __init__(self, db: Database):
        self.db = db

    async def get_bot_for_organization(self, organization_id: str, bot_id: str) -> Dict[str, Any]:
        bot = await self.db.get_bot_profile(bot_id)
        if not bot or bot.get("organization_id") != organization_id:
            raise NotFoundError("Bot not found or organization mismatch")
        return bot

    async def get_public_bot_profile(self, organization_id: str, bot_id: str) -> Dict[str, Any]:
        return to_public_bot_profile(await self.get_bot_for_organization(organization_id, bot_id))

    async def validate_embed_token(self, token: str, current_domain: Optional[str] = None) -> Dict[str, Any]:
        """Valida el token del widget desplegado y devuelve la configuración pública del bot"""
        embed_token = await require_valid_embed_token(self.db, token, current_domain)

        bot = await self.db.get_bot_profile(embed_token["bot_id"])
        if not bot:
            raise NotFoundError("Bot not found")

        try:
            await self.db.update_embed_token(embed_token["id"], {
                "requests_today": (embed_token.get("requests_today") or 0) + 1,
                "last_request": now_ms(),
            })
        except Exception as e:
            logger.warning(f"Failed to record embed token usage: {str(e)}")

        return {
            "valid": True,
            "bot_id": bot["id"],
            "organization_id": bot.get("organization_id"),
            "bot_profile": to_public_bot_profile(bot),
        }

    async def create_session(
        self,
        organization_id: str,
        bot_id: str,
        visitor_id: Optional[str] = None,
        embed_token: Optional[str] = None,
        current_domain: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Crea una conversación "embed" y una sesión de visitante ligada a ella

        Returns:
            Dict con session_token, conversation_id, visitor_id y expires_at
        """
        bot = await self.get_bot_for_organization(organization_id, bot_id)

        if embed_token:
            token_row = await require_valid_embed_token(self.db, embed_token, current_domain)
            if token_row["bot_id"] != bot_id:
                raise UnauthorizedError("Unauthorized: Wrong bot")

        visitor_id = visitor_id or generate_visitor_id()

        conversation = await self.db.create_conversation({
            "bot_id": bot_id,
            "user_id": bot.get("user_id"),
            "organization_id": organization_id,
            "visitor_id": visitor_id,
            "integration": Integration.EMBED.value,
            "topic": "Visitor Chat",
        })

        session_token, expires_at = await create_visitor_session(
            self.db,
            bot_id=bot_id,
            visitor_id=visitor_id,
            organization_id=organization_id,
            conversation_id=conversation["id"],
            ip_address=ip_address,
            user_agent_hash=hash_user_agent(user_agent),
        )

        logger.info(f"Created visitor session for bot {bot_id}, conversation {conversation['id']}")
        return {
            "session_token": session_token,
            "conversation_id": conversation["id"],
            "visitor_id": visitor_id,
            "expires_at": expires_at,
        }

    async def authorize_conversation(self, conversation_id: str, session_token: str):
        """Valida la sesión y que la conversación pertenezca a ella; devuelve (session, conversation)"""
        session = await require_valid_visitor_session(self.db, session_token)
        conversation = await self.db.get_conversation(conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        assert_conversation_owned_by_visitor_session(conversation, session)
        return session, conversation

    async def authorize_active_conversation(self, conversation_id: str, session_token: str):
        session, conversation = await self.authorize_conversation(conversation_id, session_token)
        if conversation.get("status") == ConversationStatus.CLOSED.value:
            raise ConversationClosedError()
        return session, conversation

    async def send_message(self, conversation_id: str, session_token: str, content: str) -> Dict[str, Any]:
        """
        Guarda un mensaje del visitante tras validar sesión, propiedad, estado y límite de frecuencia
        """
        try:
            session, conversation = await self.authorize_active_conversation(conversation_id, session_token)
            settings = get_settings()
            await assert_rate_limit_messages_per_window(
                self.db,
                conversation_id,
                limit=settings.public_message_rate_limit,
                window_ms=settings.public_message_rate_window_ms,
            )
        except TenantBotError as e:
            await log_audit(
                self.db,
                user_id="unauthenticated",
                action="public_send_message",
                resource_type="conversation",
                resource_id=conversation_id,
                status=AuditStatus.DENIED if e.status_code in (401, 403, 429) else AuditStatus.ERROR,
                error_message=e.message,
            )
            raise

        message = await self.db.add_message({
            "conversation_id": conversation_id,
            "visitor_id": session["visitor_id"],
            "role": "user",
            "content": content,
        })

        await log_audit(
            self.db,
            user_id=f"visitor:{session['visitor_id']}",
            organization_id=session.get("organization_id"),
            action="public_send_message",
            resource_type="message",
            resource_id=message["id"],
            status=AuditStatus.SUCCESS,
            before=None,
            after={"conversation_id": conversation_id, "message_id": message["id"]},
        )

        return {"success": True, "message_id": message["id"]}

    async def list_messages(self, conversation_id: str, session_token: str) -> List[Dict[str, Any]]:
        await self.authorize_conversation(conversation_id, session_token)
        messages = await self.db.list_messages(conversation_id)
        return [
            {
                "id": message["id"],
                "role": message["role"],
                "content": message["content"],
                "created_at": message["created_at"],
            }
            for message in messages
        ]

    async def get_conversation_status(self, conversation_id: str, session_token: str) -> Dict[str, Any]:
        """Cualquier fallo de validación se informa como exists=False"""
        try:
            _, conversation = await self.authorize_conversation(conversation_id, session_token)
        except TenantBotError:
            return {"exists": False, "is_active": False}

        return {
            "exists": True,
            "is_active": conversation.get("status") != ConversationStatus.CLOSED.value,
            "bot_id": conversation["bot_id"],
        }

    async def end_session(self, conversation_id: str, session_token: str) -> Dict[str, Any]:
        """Revoca la sesión y cierra la conversación; los datos se conservan para revisión"""
        session, conversation = await self.authorize_conversation(conversation_id, session_token)

        await self.db.update_visitor_session(session["id"], {"revoked": True})
        if conversation.get("status") != ConversationStatus.CLOSED.value:
            await self.db.update_conversation(conversation_id, {
                "status": ConversationStatus.CLOSED.value,
                "updated_at": now_ms(),
            })

        return {"success": True}

    async def track_event(
        self,
        conversation_id: str,
        session_token: str,
        event_type: str,
        href: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Registra un evento de lead una sola vez por conversación, tipo y día UTC

        Solo cuenta para conversaciones "embed"; el resto se ignora.
        """
        session, conversation = await self.authorize_conversation(conversation_id, session_token)

        if conversation.get("integration") != Integration.EMBED.value:
            return {"success": True, "skipped": True, "reason": "not_embed"}

        now = now_ms()
        dedupe_key = f"{conversation['id']}:{event_type}:{utc_day_key(now)}"

        if await self.db.get_business_event_by_dedupe_key(dedupe_key):
            return {"success": True, "deduped": True}

        await self.db.insert_business_event({
            "organization_id": conversation.get("organization_id") or session.get("organization_id"),
            "bot_id": conversation["bot_id"],
            "conversation_id": conversation["id"],
            "visitor_id": conversation.get("visitor_id") or session.get("visitor_id"),
            "event_type": event_type,
            "href": href,
            "created_at": now,
            "dedupe_key": dedupe_key,
        })

        return {"success": True, "deduped": False}
