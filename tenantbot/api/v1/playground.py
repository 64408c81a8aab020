# tenantbot/api/v1/playground.py
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from tenantbot.api.dependencies import get_chatbot_service, get_database, get_tenant_context
from tenantbot.core.chatbot import ChatbotService
from tenantbot.core.database import Database
from tenantbot.core.errors import TenantBotError
from tenantbot.core.playground import PlaygroundManager
from tenantbot.models.schemas import PlaygroundMessage, TenantContext

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/playground", tags=["playground"])

def get_playground_manager(
    db: Database = Depends(get_database),
    chatbot: ChatbotService = Depends(get_chatbot_service),
) -> PlaygroundManager:
    return PlaygroundManager(db, chatbot)

@router.get("/session", summary="Sesión de prueba activa")
async def get_session(
    bot_id: str = Query(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: PlaygroundManager = Depends(get_playground_manager),
):
    session = await manager.get_or_create_session(tenant, bot_id)
    messages = await manager.list_messages(session["id"])
    return {"session": session, "messages": messages}

@router.post("/messages", summary="Enviar mensaje de prueba al bot")
async def send_message(
    body: PlaygroundMessage,
    tenant: TenantContext = Depends(get_tenant_context),
    manager: PlaygroundManager = Depends(get_playground_manager),
):
    try:
        return await manager.send_message(tenant, body.bot_id, body.message)
    except TenantBotError:
        raise
    except Exception as e:
        logger.error(f"Error en playground: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error generando la respuesta: {str(e)}")

@router.post("/restart", summary="Reiniciar la sesión de prueba")
async def restart_session(
    bot_id: str = Query(...),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: PlaygroundManager = Depends(get_playground_manager),
):
    return {"session": await manager.restart_session(tenant, bot_id)}
