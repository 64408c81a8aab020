import logging
from typing import Any, Dict, List, Optional

from tenantbot.core.api_key_crypto import with_decrypted_api_key
from tenantbot.core.audit import AuditedAction
from tenantbot.core.database import Database
from tenantbot.core.document_chunker import calculate_optimal_chunk_size, chunk_document
from tenantbot.core.errors import NotFoundError
from tenantbot.core.rag import generate_embedding, resolve_embedding_api_key
from tenantbot.core.security import assert_can_access_resource, require_bot_profile
from tenantbot.models.schemas import TenantContext

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("inline", "pdf", "website", "notion")

class KnowledgeManager:
    """Gestiona la base de conocimiento de un bot: alta, listado, edición y borrado"""

    def __init__(self, db: Database):
        self.db = db

    async def _embedding_key_for(self, bot: Dict[str, Any]) -> str:
        api_key = resolve_embedding_api_key(with_decrypted_api_key(bot))
        if not api_key:
            raise ValueError("Embedding API key is not configured")
        return api_key

    async def _load_document(self, tenant: TenantContext, document_id: str) -> Dict[str, Any]:
        document = await self.db.get_document(document_id)
        if not document:
            raise NotFoundError("Document not found")
        return assert_can_access_resource(document, tenant, "Unauthorized: Not your document")

    async def add_knowledge(
        self,
        tenant: TenantContext,
        bot_id: str,
        text: str,
        source_type: str = "inline",
        source_metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Divide el texto en fragmentos, calcula sus embeddings y los guarda

        Returns:
            Los documentos insertados, uno por fragmento
        """
        if source_type not in SOURCE_TYPES:
            raise ValueError(f"Unsupported source type: {source_type}")

        async with AuditedAction(self.db, tenant, "add_knowledge", "document", bot_id) as audit:
            bot = await require_bot_profile(self.db, bot_id)
            assert_can_access_resource(bot, tenant, "Unauthorized: Not your bot")
            api_key = await self._embedding_key_for(bot)

            chunks = chunk_document(text, calculate_optimal_chunk_size(text))
            documents = []
            for chunk in chunks:
                embedding = await generate_embedding(chunk.text, api_key)
                metadata = dict(source_metadata or {})
                if chunk.chunk_total > 1:
                    metadata.update({
                        "chunk_index": chunk.chunk_index,
                        "chunk_total": chunk.chunk_total,
                        "original_size": chunk.original_size,
                    })
                documents.append(await self.db.insert_document({
                    "bot_id": bot_id,
                    "user_id": tenant.user_id,
                    "organization_id": bot.get("organization_id"),
                    "text": chunk.text,
                    "embedding": embedding,
                    "source_type": source_type,
                    "source_metadata": metadata or None,
                }))

            logger.info(f"Added {len(documents)} knowledge chunks to bot {bot_id}")
            audit.after = {
                "document_ids": [doc["id"] for doc in documents],
                "source_type": source_type,
            }
            return documents

    async def list_documents(self, tenant: TenantContext, bot_id: str) -> List[Dict[str, Any]]:
        bot = await require_bot_profile(self.db, bot_id)
        assert_can_access_resource(bot, tenant, "Unauthorized: Not your bot")
        documents = await self.db.list_documents(bot_id)
        # El embedding no se devuelve al panel
        return [{k: v for k, v in doc.items() if k != "embedding"} for doc in documents]

    async def update_document(self, tenant: TenantContext, document_id: str, text: str) -> Dict[str, Any]:
        """Reemplaza el texto de un documento y recalcula su embedding"""
        async with AuditedAction(self.db, tenant, "update_document", "document", document_id) as audit:
            document = await self._load_document(tenant, document_id)
            audit.before = {"text": document.get("text")}

            bot = await require_bot_profile(self.db, document["bot_id"])
            api_key = await self._embedding_key_for(bot)
            embedding = await generate_embedding(text, api_key)

            updated = await self.db.update_document(document_id, {"text": text, "embedding": embedding})
            audit.after = {"text": text}
            return {k: v for k, v in (updated or {}).items() if k != "embedding"}

    async def delete_document(self, tenant: TenantContext, document_id: str) -> bool:
        async with AuditedAction(self.db, tenant, "delete_document", "document", document_id) as audit:
            document = await self._load_document(tenant, document_id)
            audit.before = {"text": document.get("text"), "bot_id": document.get("bot_id")}
            return await self.db.delete_document(document_id)
