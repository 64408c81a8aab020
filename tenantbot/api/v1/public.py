# tenantbot/api/v1/public.py
from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from fastapi.responses import StreamingResponse
import json
import logging

from tenantbot.api.dependencies import get_chatbot_service, get_database
from tenantbot.core.chatbot import ChatbotService
from tenantbot.core.database import Database
from tenantbot.core.errors import ConversationClosedError, TenantBotError
from tenantbot.core.widget import WidgetSessionManager
from tenantbot.models.schemas import (
    ConversationStatusResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    EmbedTokenValidateRequest,
    Integration,
    PublicBotProfile,
    ReplyRequest,
    ReplyResponse,
    SendMessageRequest,
    SessionRequest,
    TrackEventRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/public")

def get_widget_manager(db: Database = Depends(get_database)) -> WidgetSessionManager:
    return WidgetSessionManager(db)

@router.get(
    "/bot-profile",
    response_model=PublicBotProfile,
    summary="Configuración pública del widget",
)
async def get_bot_profile(
    organization_id: str = Query(..., description="ID de la organización dueña del bot"),
    bot_id: str = Query(..., description="ID del bot"),
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    """
    Devuelve la apariencia y funcionalidades del bot para renderizar el widget.
    Nunca incluye API keys, prompts ni configuración del modelo.
    """
    return await widget.get_public_bot_profile(organization_id, bot_id)

@router.post("/embed-token/validate", summary="Validar token de embebido")
async def validate_embed_token(
    body: EmbedTokenValidateRequest,
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    return await widget.validate_embed_token(body.token, body.current_domain)

@router.post(
    "/sessions",
    response_model=CreateSessionResponse,
    summary="Crear sesión de visitante",
)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    """
    Crea una conversación "embed" y una sesión de visitante.

    Raises:
        HTTPException:
            - 401 si el token de embebido no es válido para el dominio
            - 404 si el bot no existe o no pertenece a la organización
    """
    return await widget.create_session(
        organization_id=body.organization_id,
        bot_id=body.bot_id,
        visitor_id=body.visitor_id,
        embed_token=body.embed_token,
        current_domain=body.current_domain or request.headers.get("origin"),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

@router.post("/messages", summary="Enviar mensaje del visitante")
async def send_message(
    body: SendMessageRequest,
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    return await widget.send_message(body.conversation_id, body.session_token, body.content)

@router.get("/messages", summary="Listar mensajes de la conversación")
async def list_messages(
    conversation_id: str = Query(..., description="ID de la conversación"),
    session_token: str = Query(..., description="Token de sesión del visitante"),
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    return {"messages": await widget.list_messages(conversation_id, session_token)}

@router.get(
    "/conversations/{conversation_id}/status",
    response_model=ConversationStatusResponse,
    summary="Estado de la conversación",
)
async def get_conversation_status(
    conversation_id: str = Path(..., description="ID de la conversación"),
    session_token: str = Query(..., description="Token de sesión del visitante"),
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    return await widget.get_conversation_status(conversation_id, session_token)

@router.post("/reply", response_model=ReplyResponse, summary="Generar respuesta del bot")
async def generate_reply(
    body: ReplyRequest,
    widget: WidgetSessionManager = Depends(get_widget_manager),
    chatbot: ChatbotService = Depends(get_chatbot_service),
):
    """
    Genera la respuesta del bot para la conversación de la sesión.

    Los errores de configuración o del proveedor, y una conversación cerrada,
    se devuelven con success=false.
    """
    try:
        _, conversation = await widget.authorize_active_conversation(body.conversation_id, body.session_token)
    except ConversationClosedError as e:
        return ReplyResponse(success=False, error=e.message)

    try:
        return await chatbot.generate_bot_response(
            bot_id=conversation["bot_id"],
            conversation_id=conversation["id"],
            user_message=body.user_message,
            integration=Integration.WIDGET.value,
        )
    except TenantBotError:
        raise
    except Exception as e:
        logger.error(f"Error generating reply: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Error generando la respuesta: {str(e)}"
        )

@router.post("/reply/stream", summary="Generar respuesta del bot en streaming (SSE)")
async def stream_reply(
    body: ReplyRequest,
    widget: WidgetSessionManager = Depends(get_widget_manager),
    chatbot: ChatbotService = Depends(get_chatbot_service),
):
    conversation, closed_error = None, None
    try:
        _, conversation = await widget.authorize_active_conversation(body.conversation_id, body.session_token)
    except ConversationClosedError as e:
        closed_error = e.message

    async def event_stream():
        if closed_error:
            yield f"data: {json.dumps({'type': 'done', 'success': False, 'error': closed_error})}\n\n"
            return
        try:
            async for event in chatbot.stream_bot_response(
                bot_id=conversation["bot_id"],
                conversation_id=conversation["id"],
                user_message=body.user_message,
                integration=Integration.WIDGET.value,
            ):
                yield f"data: {json.dumps(event)}\n\n"
        except Exception as e:
            logger.error(f"Error streaming reply: {str(e)}")
            yield f"data: {json.dumps({'type': 'done', 'success': False, 'error': str(e)})}\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream")

@router.post("/sessions/end", summary="Terminar la sesión del visitante")
async def end_session(
    body: SessionRequest,
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    return await widget.end_session(body.conversation_id, body.session_token)

@router.post("/events", summary="Registrar evento de lead")
async def track_event(
    body: TrackEventRequest,
    widget: WidgetSessionManager = Depends(get_widget_manager),
):
    return await widget.track_event(
        body.conversation_id,
        body.session_token,
        body.event_type.value,
        body.href,
    )
