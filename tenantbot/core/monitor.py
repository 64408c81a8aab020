import logging
from typing import Any, Dict, List, Optional

from tenantbot.core.audit import AuditedAction
from tenantbot.core.database import Database, now_ms
from tenantbot.core.errors import NotFoundError
from tenantbot.core.security import assert_can_access_resource, require_bot_profile
from tenantbot.models.schemas import ConversationStatus, TenantContext

logger = logging.getLogger(__name__)

class MonitorManager:
    """Revisión de conversaciones desde el panel"""

    def __init__(self, db: Database):
        self.db = db

    async def _require_conversation(self, tenant: TenantContext, conversation_id: str) -> Dict[str, Any]:
        conversation = await self.db.get_conversation(conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        bot = await require_bot_profile(self.db, conversation["bot_id"])
        assert_can_access_resource(bot, tenant, "Unauthorized: Cannot access this conversation")
        return conversation

    async def list_conversations(
        self,
        tenant: TenantContext,
        bot_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Conversaciones del bot con número de mensajes y último mensaje"""
        bot = await require_bot_profile(self.db, bot_id)
        assert_can_access_resource(bot, tenant, "Unauthorized: Cannot access this bot")

        conversations = await self.db.list_conversations(bot_id, status=status, limit=limit)
        summaries = []
        for conversation in conversations:
            messages = await self.db.list_messages(conversation["id"])
            last_message = messages[-1] if messages else None
            summaries.append({
                "id": conversation["id"],
                "bot_id": conversation["bot_id"],
                "integration": conversation.get("integration"),
                "status": conversation.get("status", ConversationStatus.ACTIVE.value),
                "topic": conversation.get("topic"),
                "visitor_id": conversation.get("visitor_id"),
                "last_message_at": conversation.get("last_message_at"),
                "message_count": len(messages),
                "last_message": last_message["content"] if last_message else None,
            })
        return summaries

    async def list_messages(self, tenant: TenantContext, conversation_id: str) -> List[Dict[str, Any]]:
        await self._require_conversation(tenant, conversation_id)
        return await self.db.list_messages(conversation_id)

    async def close_conversation(self, tenant: TenantContext, conversation_id: str) -> Dict[str, Any]:
        async with AuditedAction(self.db, tenant, "close_conversation", "conversation", conversation_id) as audit:
            conversation = await self._require_conversation(tenant, conversation_id)
            audit.before = {"status": conversation.get("status")}
            await self.db.update_conversation(conversation_id, {
                "status": ConversationStatus.CLOSED.value,
                "updated_at": now_ms(),
            })
            audit.after = {"status": ConversationStatus.CLOSED.value}
            return {"success": True}
