"""Retrieval-augmented generation over a bot's knowledge base.

The user message is embedded with Gemini, matched against the bot's
documents through the ``match_documents`` RPC and the matching texts are
joined into a context block for the system prompt.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tenantbot.config.settings import get_settings
from tenantbot.core.database import Database, now_ms
from tenantbot.core.model_providers import GOOGLE_AI, normalize_model_provider
from tenantbot.core.openai_client import EmbeddingClient

logger = logging.getLogger(__name__)

# Mensajes de este tamaño o menores no justifican una búsqueda
MIN_QUERY_LENGTH = 5

@dataclass
class RagContext:
    context_block: str = ""
    knowledge_chunks_count: int = 0
    retrieved_document_ids: List[str] = field(default_factory=list)
    query_similarities: List[float] = field(default_factory=list)

async def generate_embedding(text: str, api_key: str) -> List[float]:
    """Gemini embedding for a piece of text"""
    client = EmbeddingClient(api_key=api_key)
    return await client.embed(text)

def resolve_embedding_api_key(bot_config: Optional[Dict[str, Any]]) -> Optional[str]:
    """Environment key first, else the bot's own key when its provider is Google AI"""
    env_key = get_settings().embedding_api_key
    if env_key:
        return env_key
    if bot_config and normalize_model_provider(bot_config.get("model_provider")) == GOOGLE_AI:
        return bot_config.get("api_key") or None
    return None

async def _log_kb_usage(
    db: Database,
    bot_id: str,
    conversation_id: str,
    document_ids: List[str],
    similarities: List[float],
    user_id: Optional[str],
) -> None:
    timestamp = now_ms()
    rows = [
        {
            "user_id": user_id,
            "bot_id": bot_id,
            "conversation_id": conversation_id,
            "document_id": document_id,
            "similarity": similarity,
            "timestamp": timestamp,
        }
        for document_id, similarity in zip(document_ids, similarities)
    ]
    try:
        await db.insert_kb_usage_logs(rows)
    except Exception as e:
        logger.warning(f"Failed to log KB usage: {str(e)}")

async def retrieve_rag_context_with_embedding(
    db: Database,
    bot_id: str,
    embedding: List[float],
    conversation_id: Optional[str] = None,
    user_id_for_logging: Optional[str] = None,
    limit: Optional[int] = None,
) -> RagContext:
    """
    Busca los documentos del bot más cercanos a un embedding ya calculado

    El registro de uso en kb_usage_logs es best-effort: un fallo se registra
    como warning y no interrumpe la respuesta.
    """
    if not embedding:
        return RagContext()

    limit = limit or get_settings().rag_limit
    matches = await db.match_documents(embedding, bot_id, limit)

    document_ids = [match["id"] for match in matches]
    similarities = [float(match.get("similarity") or 0) for match in matches]

    if conversation_id and document_ids:
        await _log_kb_usage(db, bot_id, conversation_id, document_ids, similarities, user_id_for_logging)

    if not document_ids:
        return RagContext()

    documents = await db.get_documents_by_ids(document_ids)
    texts = [doc["text"] for doc in documents if doc.get("text")]

    return RagContext(
        context_block="\n\n".join(texts),
        knowledge_chunks_count=len(matches),
        retrieved_document_ids=document_ids,
        query_similarities=similarities,
    )

async def retrieve_rag_context(
    db: Database,
    bot_id: str,
    user_message: str,
    bot_config: Optional[Dict[str, Any]] = None,
    conversation_id: Optional[str] = None,
    user_id_for_logging: Optional[str] = None,
    limit: Optional[int] = None,
) -> RagContext:
    trimmed = (user_message or "").strip()
    if len(trimmed) <= MIN_QUERY_LENGTH:
        return RagContext()

    api_key = resolve_embedding_api_key(bot_config)
    if not api_key:
        logger.info("No embedding API key available, skipping knowledge base retrieval")
        return RagContext()

    embedding = await generate_embedding(trimmed, api_key)

    return await retrieve_rag_context_with_embedding(
        db,
        bot_id,
        embedding,
        conversation_id=conversation_id,
        user_id_for_logging=user_id_for_logging,
        limit=limit,
    )
