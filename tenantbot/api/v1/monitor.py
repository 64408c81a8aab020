# tenantbot/api/v1/monitor.py
from fastapi import APIRouter, Depends, Path, Query
from typing import List, Optional

from tenantbot.api.dependencies import get_database, get_tenant_context
from tenantbot.core.database import Database
from tenantbot.core.monitor import MonitorManager
from tenantbot.models.schemas import ConversationStatus, ConversationSummary, TenantContext

router = APIRouter(prefix="/monitor", tags=["monitor"])

def get_monitor_manager(db: Database = Depends(get_database)) -> MonitorManager:
    return MonitorManager(db)

@router.get("/conversations", response_model=List[ConversationSummary], summary="Conversaciones del bot")
async def list_conversations(
    bot_id: str = Query(...),
    status: Optional[ConversationStatus] = Query(None, description="Filtrar por estado"),
    limit: Optional[int] = Query(None, gt=0, le=200),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: MonitorManager = Depends(get_monitor_manager),
):
    return await manager.list_conversations(tenant, bot_id, status.value if status else None, limit)

@router.get("/conversations/{conversation_id}/messages", summary="Mensajes de una conversación")
async def list_messages(
    conversation_id: str = Path(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: MonitorManager = Depends(get_monitor_manager),
):
    return {"messages": await manager.list_messages(tenant, conversation_id)}

@router.post("/conversations/{conversation_id}/close", summary="Cerrar una conversación")
async def close_conversation(
    conversation_id: str = Path(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: MonitorManager = Depends(get_monitor_manager),
):
    return await manager.close_conversation(tenant, conversation_id)
