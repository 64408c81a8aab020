import logging
from typing import Any, Dict, List, Optional

from tenantbot.core.audit import AuditedAction
from tenantbot.core.chatbot import ChatbotService
from tenantbot.core.database import Database, now_ms
from tenantbot.core.security import assert_can_access_resource, require_bot_profile
from tenantbot.models.schemas import ConversationStatus, Integration, TenantContext

logger = logging.getLogger(__name__)

PLAYGROUND_TOPIC = "Playground Test Session"

class PlaygroundManager:
    """Chat de prueba del tenant contra su propio bot (integración "playground")"""

    def __init__(self, db: Database, chatbot: Optional[ChatbotService] = None):
        self.db = db
        self.chatbot = chatbot or ChatbotService(db)

    async def _require_bot(self, tenant: TenantContext, bot_id: str) -> Dict[str, Any]:
        bot = await require_bot_profile(self.db, bot_id)
        return assert_can_access_resource(bot, tenant, "Unauthorized: Cannot access bot")

    async def _create_session(self, tenant: TenantContext, bot: Dict[str, Any]) -> Dict[str, Any]:
        return await self.db.create_conversation({
            "bot_id": bot["id"],
            "user_id": tenant.user_id,
            "organization_id": bot.get("organization_id"),
            "integration": Integration.PLAYGROUND.value,
            "topic": PLAYGROUND_TOPIC,
        })

    async def get_or_create_session(self, tenant: TenantContext, bot_id: str) -> Dict[str, Any]:
        async with AuditedAction(self.db, tenant, "get_or_create_playground_session", "conversation") as audit:
            bot = await self._require_bot(tenant, bot_id)
            session = await self.db.find_active_conversation(bot_id, Integration.PLAYGROUND.value, tenant.user_id)
            if not session:
                session = await self._create_session(tenant, bot)
                logger.info(f"Created playground session {session['id']} for bot {bot_id}")
            audit.resource_id = session["id"]
            audit.after = {"id": session["id"], "bot_id": bot_id}
            return session

    async def list_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        return await self.db.list_messages(conversation_id)

    async def restart_session(self, tenant: TenantContext, bot_id: str) -> Dict[str, Any]:
        """Cierra la sesión activa y abre una nueva"""
        async with AuditedAction(self.db, tenant, "restart_playground_session", "conversation") as audit:
            bot = await self._require_bot(tenant, bot_id)
            current = await self.db.find_active_conversation(bot_id, Integration.PLAYGROUND.value, tenant.user_id)
            if current:
                await self.db.update_conversation(current["id"], {
                    "status": ConversationStatus.CLOSED.value,
                    "updated_at": now_ms(),
                })
                audit.before = {"id": current["id"]}

            session = await self._create_session(tenant, bot)
            audit.resource_id = session["id"]
            audit.after = {"id": session["id"]}
            return session

    async def send_message(self, tenant: TenantContext, bot_id: str, message: str) -> Dict[str, Any]:
        """Guarda el mensaje del tenant y genera la respuesta del bot"""
        session = await self.get_or_create_session(tenant, bot_id)
        await self.db.add_message({
            "conversation_id": session["id"],
            "user_id": tenant.user_id,
            "role": "user",
            "content": message,
        })

        reply = await self.chatbot.generate_bot_response(
            bot_id=bot_id,
            conversation_id=session["id"],
            user_message=message,
            integration=Integration.PLAYGROUND.value,
            user_id_for_logging=tenant.user_id,
        )
        return {"conversation_id": session["id"], **reply}
