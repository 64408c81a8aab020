# tenantbot/api/v1/analytics.py
from fastapi import APIRouter, Depends, Query

from tenantbot.api.dependencies import get_database, get_tenant_context
from tenantbot.core.analytics import AnalyticsManager
from tenantbot.core.database import Database
from tenantbot.models.schemas import AIMetrics, KnowledgeStats, TenantContext

router = APIRouter(prefix="/analytics", tags=["analytics"])

def get_analytics_manager(db: Database = Depends(get_database)) -> AnalyticsManager:
    return AnalyticsManager(db)

@router.get("/knowledge", response_model=KnowledgeStats, summary="Uso de la base de conocimiento")
async def get_knowledge_stats(
    bot_id: str = Query(...),
    days: int = Query(7, ge=1, le=365, description="Ventana en días"),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: AnalyticsManager = Depends(get_analytics_manager),
):
    return await manager.get_knowledge_stats(tenant, bot_id, days)

@router.get("/ai", response_model=AIMetrics, summary="Métricas de las respuestas de IA")
async def get_ai_metrics(
    bot_id: str = Query(...),
    days: int = Query(7, ge=1, le=365),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: AnalyticsManager = Depends(get_analytics_manager),
):
    return await manager.get_ai_metrics(tenant, bot_id, days)
