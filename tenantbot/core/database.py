"""Database operations module.

Thin wrappers over the Supabase table API. Every row is a plain dict and
every timestamp is epoch milliseconds.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from tenantbot.core.supabase_client import get_client

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time in epoch milliseconds"""
    return int(time.time() * 1000)


class Database:
    """Database operations handler."""

    def __init__(self, client=None):
        """Initialize database connection."""
        self.supabase = client or get_client()

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except APIError as e:
            logger.error(f"Error {action}: {str(e)}")
            raise

    def _first(self, response) -> Optional[Dict[str, Any]]:
        return response.data[0] if response.data else None

    # ===== BOT PROFILES =====

    async def get_bot_profile(self, bot_id: str) -> Optional[Dict[str, Any]]:
        """Get a bot profile by ID."""
        response = self._execute(
            self.supabase.table('bot_profiles').select('*').eq('id', bot_id).limit(1),
            "getting bot profile",
        )
        return self._first(response)

    async def get_bot_profile_for_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get the first bot profile owned by a user."""
        response = self._execute(
            self.supabase.table('bot_profiles')
                .select('*')
                .eq('user_id', user_id)
                .order('created_at')
                .limit(1),
            "getting bot profile for user",
        )
        return self._first(response)

    async def list_bot_profiles_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('bot_profiles').select('*').eq('user_id', user_id).order('created_at'),
            "listing bot profiles",
        )
        return response.data or []

    async def list_bot_profiles_for_organization(self, organization_id: str) -> List[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('bot_profiles')
                .select('*')
                .eq('organization_id', organization_id)
                .order('created_at'),
            "listing organization bot profiles",
        )
        return response.data or []

    async def create_bot_profile(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new bot profile."""
        response = self._execute(self.supabase.table('bot_profiles').insert(data), "creating bot profile")
        return response.data[0]

    async def update_bot_profile(self, bot_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a bot profile."""
        response = self._execute(
            self.supabase.table('bot_profiles').update(data).eq('id', bot_id),
            "updating bot profile",
        )
        return self._first(response)

    # ===== CONVERSATIONS =====

    async def create_conversation(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = now_ms()
        row = {
            "status": "active",
            "topic": "Conversation Topic Unknown",
            "created_at": now,
            "updated_at": now,
            "last_message_at": now,
            **data,
        }
        response = self._execute(self.supabase.table('conversations').insert(row), "creating conversation")
        return response.data[0]

    async def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('conversations').select('*').eq('id', conversation_id).limit(1),
            "getting conversation",
        )
        return self._first(response)

    async def update_conversation(self, conversation_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('conversations').update(data).eq('id', conversation_id),
            "updating conversation",
        )
        return self._first(response)

    async def list_conversations(
        self,
        bot_id: str,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = self.supabase.table('conversations').select('*').eq('bot_id', bot_id)
        if status:
            query = query.eq('status', status)
        query = query.order('last_message_at', desc=True)
        if limit:
            query = query.limit(limit)
        response = self._execute(query, "listing conversations")
        return response.data or []

    async def find_active_conversation(
        self,
        bot_id: str,
        integration: str,
        user_id: str,
    ) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('conversations')
                .select('*')
                .eq('bot_id', bot_id)
                .eq('integration', integration)
                .eq('user_id', user_id)
                .eq('status', 'active')
                .order('created_at', desc=True)
                .limit(1),
            "finding active conversation",
        )
        return self._first(response)

    # ===== MESSAGES =====

    async def add_message(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a message and bump the conversation's last_message_at"""
        now = now_ms()
        row = {"created_at": now, **data}
        response = self._execute(self.supabase.table('messages').insert(row), "adding message")
        await self.update_conversation(data["conversation_id"], {
            "last_message_at": now,
            "updated_at": now,
        })
        return response.data[0]

    async def update_message(self, message_id: str, content: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('messages').update({"content": content}).eq('id', message_id),
            "updating message",
        )
        return self._first(response)

    async def list_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('messages')
                .select('*')
                .eq('conversation_id', conversation_id)
                .order('created_at'),
            "listing messages",
        )
        return response.data or []

    async def count_messages_since(self, conversation_id: str, since_ms: int) -> int:
        response = self._execute(
            self.supabase.table('messages')
                .select('id')
                .eq('conversation_id', conversation_id)
                .gte('created_at', since_ms),
            "counting messages",
        )
        return len(response.data or [])

    # ===== VISITOR SESSIONS =====

    async def create_visitor_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute(self.supabase.table('visitor_sessions').insert(data), "creating visitor session")
        return response.data[0]

    async def get_visitor_session_by_token(self, session_token: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('visitor_sessions').select('*').eq('session_token', session_token).limit(1),
            "getting visitor session",
        )
        return self._first(response)

    async def update_visitor_session(self, session_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('visitor_sessions').update(data).eq('id', session_id),
            "updating visitor session",
        )
        return self._first(response)

    # ===== EMBED TOKENS =====

    async def create_embed_token(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute(self.supabase.table('embed_tokens').insert(data), "creating embed token")
        return response.data[0]

    async def get_embed_token(self, embed_token_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('embed_tokens').select('*').eq('id', embed_token_id).limit(1),
            "getting embed token",
        )
        return self._first(response)

    async def get_embed_token_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('embed_tokens').select('*').eq('token', token).limit(1),
            "getting embed token",
        )
        return self._first(response)

    async def update_embed_token(self, embed_token_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('embed_tokens').update(data).eq('id', embed_token_id),
            "updating embed token",
        )
        return self._first(response)

    # ===== DOCUMENTS =====

    async def insert_document(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = {"created_at": now_ms(), **data}
        response = self._execute(self.supabase.table('documents').insert(row), "inserting document")
        return response.data[0]

    async def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('documents').select('*').eq('id', document_id).limit(1),
            "getting document",
        )
        return self._first(response)

    async def get_documents_by_ids(self, document_ids: List[str]) -> List[Dict[str, Any]]:
        if not document_ids:
            return []
        response = self._execute(
            self.supabase.table('documents').select('*').in_('id', document_ids),
            "getting documents",
        )
        rows = {row["id"]: row for row in response.data or []}
        # Conservar el orden de similitud de la búsqueda
        return [rows[doc_id] for doc_id in document_ids if doc_id in rows]

    async def list_documents(self, bot_id: str, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.supabase.table('documents').select('*').eq('bot_id', bot_id)
        if user_id:
            query = query.eq('user_id', user_id)
        response = self._execute(query.order('created_at'), "listing documents")
        return response.data or []

    async def update_document(self, document_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('documents').update(data).eq('id', document_id),
            "updating document",
        )
        return self._first(response)

    async def delete_document(self, document_id: str) -> bool:
        response = self._execute(
            self.supabase.table('documents').delete().eq('id', document_id),
            "deleting document",
        )
        return bool(response.data)

    async def match_documents(self, embedding: List[float], bot_id: str, limit: int) -> List[Dict[str, Any]]:
        """Vector search over a bot's documents (pgvector RPC, see sql/schema.sql)"""
        response = self._execute(
            self.supabase.rpc('match_documents', {
                'query_embedding': embedding,
                'match_count': limit,
                'filter_bot_id': bot_id,
            }),
            "matching documents",
        )
        return response.data or []

    # ===== LOGS =====

    async def insert_audit_log(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute(self.supabase.table('audit_logs').insert(data), "inserting audit log")
        return response.data[0]

    async def insert_ai_log(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute(self.supabase.table('ai_logs').insert(data), "inserting AI log")
        return response.data[0]

    async def list_ai_logs(self, bot_id: str, since_ms: int) -> List[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('ai_logs')
                .select('*')
                .eq('bot_id', bot_id)
                .gte('created_at', since_ms)
                .order('created_at', desc=True),
            "listing AI logs",
        )
        return response.data or []

    async def insert_kb_usage_logs(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        response = self._execute(self.supabase.table('kb_usage_logs').insert(rows), "inserting KB usage logs")
        return response.data or []

    async def list_kb_usage_logs(self, bot_id: str, since_ms: int) -> List[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('kb_usage_logs')
                .select('*')
                .eq('bot_id', bot_id)
                .gt('timestamp', since_ms),
            "listing KB usage logs",
        )
        return response.data or []

    # ===== ORGANIZATIONS =====

    async def get_org_membership(self, organization_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('org_members')
                .select('*')
                .eq('organization_id', organization_id)
                .eq('user_id', user_id)
                .limit(1),
            "getting organization membership",
        )
        return self._first(response)

    # ===== BUSINESS EVENTS =====

    async def get_business_event_by_dedupe_key(self, dedupe_key: str) -> Optional[Dict[str, Any]]:
        response = self._execute(
            self.supabase.table('business_events').select('*').eq('dedupe_key', dedupe_key).limit(1),
            "getting business event",
        )
        return self._first(response)

    async def insert_business_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        response = self._execute(self.supabase.table('business_events').insert(data), "inserting business event")
        return response.data[0]
