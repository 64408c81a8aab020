"""Dashboard analytics over ai_logs and kb_usage_logs.

Both reports cover a trailing window of ``days`` days and are restricted to
bots the tenant can access.
"""
import logging
from typing import Any, Dict, List

from tenantbot.core.database import Database, now_ms
from tenantbot.core.security import assert_can_access_resource, require_bot_profile
from tenantbot.models.schemas import TenantContext

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
TOP_DOCUMENTS = 5

def _window_start(days: int) -> int:
    return now_ms() - days * DAY_MS

def _response_tokens(log: Dict[str, Any]) -> int:
    # Uso reportado por el proveedor; si falta, palabras de la respuesta
    if log.get("total_tokens") is not None:
        return int(log["total_tokens"])
    return len((log.get("bot_response") or "").split())

def compute_knowledge_stats(
    documents: List[Dict[str, Any]],
    usage_logs: List[Dict[str, Any]],
    ai_logs: List[Dict[str, Any]],
    days: int,
) -> Dict[str, Any]:
    total_queries = len(ai_logs)
    successful = sum(1 for log in ai_logs if (log.get("knowledge_chunks_retrieved") or 0) > 0)
    coverage = min(100, round(successful / total_queries * 100)) if total_queries else 0

    usage: Dict[str, Dict[str, int]] = {}
    for log in usage_logs:
        entry = usage.setdefault(str(log["document_id"]), {"count": 0, "last_used_at": 0})
        entry["count"] += 1
        entry["last_used_at"] = max(entry["last_used_at"], log.get("timestamp") or 0)

    top_documents = sorted(
        ({"document_id": doc_id, **stats} for doc_id, stats in usage.items()),
        key=lambda item: item["count"],
        reverse=True,
    )[:TOP_DOCUMENTS]

    document_usage = sorted(
        (
            {"document_id": str(doc["id"]), **usage.get(str(doc["id"]), {"count": 0, "last_used_at": 0})}
            for doc in documents
        ),
        key=lambda item: (item["count"], item["last_used_at"]),
        reverse=True,
    )

    return {
        "total_documents": len(documents),
        "documents_used_last_period": len(usage),
        "total_retrievals": len(usage_logs),
        "total_queries": total_queries,
        "successful_retrieval_queries": successful,
        "fallback_no_context_queries": total_queries - successful,
        "retrieval_coverage_percent": coverage,
        "top_documents": top_documents,
        "document_usage": document_usage,
        "unused_document_ids": [str(doc["id"]) for doc in documents if str(doc["id"]) not in usage],
        "window_days": days,
    }

def compute_ai_metrics(logs: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not logs:
        return {
            "total_requests": 0,
            "success_rate": 0,
            "avg_execution_time_ms": 0,
            "models_used": [],
            "total_tokens": 0,
            "total_context_characters": 0,
            "errors": [],
            "successful_responses": 0,
            "failed_responses": 0,
            "avg_knowledge_chunks_used": 0,
        }

    successful = [log for log in logs if log.get("success")]
    failed = [log for log in logs if not log.get("success")]

    models_used: List[str] = []
    for log in logs:
        if log.get("model") and log["model"] not in models_used:
            models_used.append(log["model"])

    total = len(logs)
    return {
        "total_requests": total,
        "success_rate": round(len(successful) / total * 100, 2),
        "avg_execution_time_ms": round(sum(log.get("execution_time_ms") or 0 for log in logs) / total),
        "models_used": models_used,
        "total_tokens": sum(_response_tokens(log) for log in logs),
        "total_context_characters": sum(len(log.get("context_used") or "") for log in logs),
        "errors": [
            {
                "message": log.get("error_message") or "Unknown error",
                "count": 1,
                "timestamp": log.get("created_at"),
            }
            for log in failed
        ],
        "successful_responses": len(successful),
        "failed_responses": len(failed),
        "avg_knowledge_chunks_used": round(
            sum(log.get("knowledge_chunks_retrieved") or 0 for log in logs) / total, 2
        ),
    }

class AnalyticsManager:
    def __init__(self, db: Database):
        self.db = db

    async def _require_bot(self, tenant: TenantContext, bot_id: str) -> Dict[str, Any]:
        bot = await require_bot_profile(self.db, bot_id)
        return assert_can_access_resource(bot, tenant, "Unauthorized: Cannot access this bot")

    async def get_knowledge_stats(self, tenant: TenantContext, bot_id: str, days: int = 7) -> Dict[str, Any]:
        """Uso de la base de conocimiento: cobertura de recuperación y documentos más usados"""
        await self._require_bot(tenant, bot_id)
        since = _window_start(days)

        documents = await self.db.list_documents(bot_id)
        usage_logs = await self.db.list_kb_usage_logs(bot_id, since)
        ai_logs = await self.db.list_ai_logs(bot_id, since)
        return compute_knowledge_stats(documents, usage_logs, ai_logs, days)

    async def get_ai_metrics(self, tenant: TenantContext, bot_id: str, days: int = 7) -> Dict[str, Any]:
        await self._require_bot(tenant, bot_id)
        logs = await self.db.list_ai_logs(bot_id, _window_start(days))
        return compute_ai_metrics(logs)
