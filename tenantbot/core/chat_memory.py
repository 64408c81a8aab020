from typing import Dict, List, Optional
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage
import logging

from tenantbot.core.database import Database

logger = logging.getLogger(__name__)

class ConversationMemory:
    """Historial de una conversación guardado en la tabla messages"""

    def __init__(self, db: Database, conversation_id: str):
        self.db = db
        self.conversation_id = conversation_id
        self.messages: List[BaseMessage] = []

    async def load(self) -> List[BaseMessage]:
        """Carga el historial; el rol "bot" se convierte en mensaje del asistente"""
        rows = await self.db.list_messages(self.conversation_id)
        self.messages = []
        for row in rows:
            content = row.get("content") or ""
            if row.get("role") == "bot":
                self.messages.append(AIMessage(content=content))
            else:
                self.messages.append(HumanMessage(content=content))
        logger.info(f"Loaded {len(self.messages)} messages for conversation {self.conversation_id}")
        return self.messages

    def add_user_message(self, message: str) -> None:
        """Agrega el mensaje del usuario salvo que ya sea el último del historial"""
        if self.messages:
            last = self.messages[-1]
            if isinstance(last, HumanMessage) and last.content == message:
                return
        self.messages.append(HumanMessage(content=message))

    def add_ai_message(self, message: str) -> None:
        self.messages.append(AIMessage(content=message))

    def to_provider_messages(self, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Historial en formato {"role", "content"} con roles user/assistant"""
        messages = self.messages[-limit:] if limit else self.messages
        return [
            {
                "role": "assistant" if isinstance(message, AIMessage) else "user",
                "content": message.content,
            }
            for message in messages
            if message.content
        ]
