# tenantbot/models/schemas.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from enum import Enum

class OrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

class Integration(str, Enum):
    EMBED = "embed"
    WIDGET = "widget"
    PLAYGROUND = "playground"

class ConversationStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"

class AuditStatus(str, Enum):
    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"

class LeadEventType(str, Enum):
    WHATSAPP_CLICK = "lead_whatsapp_click"
    EMAIL_CLICK = "lead_email_click"

class TenantContext(BaseModel):
    """
    Identidad del llamador autenticado: usuario y, opcionalmente, su organización activa
    """
    user_id: str = Field(..., description="ID del usuario autenticado")
    org_id: Optional[str] = Field(None, description="Organización activa del usuario")
    org_role: Optional[OrgRole] = Field(None, description="Rol del usuario en la organización activa")

# ===== Widget público =====

class PublicBotProfile(BaseModel):
    """
    Configuración visible del widget. Nunca incluye claves, prompts ni parámetros del modelo
    """
    id: str
    avatar_url: Optional[str] = None
    bot_names: Optional[str] = None
    bot_description: Optional[str] = None
    msg_placeholder: Optional[str] = None
    primary_color: Optional[str] = None
    font: Optional[str] = None
    theme_mode: Optional[str] = None
    header_style: Optional[str] = None
    message_style: Optional[str] = None
    corner_radius: Optional[int] = None
    enable_feedback: Optional[bool] = False
    enable_file_upload: Optional[bool] = False
    enable_sound: Optional[bool] = False
    history_reset: Optional[str] = None

class EmbedTokenValidateRequest(BaseModel):
    token: str = Field(..., description="Token de embebido del widget")
    current_domain: Optional[str] = Field(None, description="Dominio de la página que embebe el widget")

class CreateSessionRequest(BaseModel):
    """
    Modelo para abrir una sesión de visitante
    """
    organization_id: str = Field(..., description="Organización dueña del bot")
    bot_id: str = Field(..., description="ID del bot")
    visitor_id: Optional[str] = Field(None, description="ID del visitante; se genera si falta")
    embed_token: Optional[str] = Field(None, description="Token de embebido para despliegues en dominios")
    current_domain: Optional[str] = Field(None, description="Dominio actual de la página")

class CreateSessionResponse(BaseModel):
    session_token: str
    conversation_id: str
    visitor_id: str
    expires_at: int

class SessionRequest(BaseModel):
    conversation_id: str = Field(..., description="ID de la conversación")
    session_token: str = Field(..., description="Token de sesión del visitante")

class SendMessageRequest(SessionRequest):
    content: str = Field(..., min_length=1, description="Contenido del mensaje del visitante")

class ReplyRequest(SessionRequest):
    user_message: str = Field(..., min_length=1, description="Mensaje al que el bot debe responder")

class TrackEventRequest(SessionRequest):
    event_type: LeadEventType = Field(..., description="Tipo de evento de lead")
    href: Optional[str] = Field(None, description="Enlace pulsado por el visitante")

class ConversationStatusResponse(BaseModel):
    exists: bool
    is_active: bool = False
    bot_id: Optional[str] = None

class ReplyResponse(BaseModel):
    """
    Resultado de la generación de una respuesta del bot
    """
    success: bool = Field(..., description="Si la respuesta se generó sin errores")
    content: Optional[str] = Field(None, description="Texto de la respuesta guardada")
    model: Optional[str] = None
    provider: Optional[str] = None
    error: Optional[str] = Field(None, description="Motivo del fallo cuando success es falso")

# ===== Panel del tenant =====

class BotProfileUpdate(BaseModel):
    """
    Campos editables del perfil del bot (apariencia y funcionalidades)
    """
    avatar_url: Optional[str] = None
    bot_names: Optional[str] = None
    bot_description: Optional[str] = None
    msg_placeholder: Optional[str] = None
    primary_color: Optional[str] = None
    font: Optional[str] = None
    theme_mode: Optional[str] = None
    header_style: Optional[str] = None
    message_style: Optional[str] = None
    corner_radius: Optional[int] = None
    enable_feedback: Optional[bool] = None
    enable_file_upload: Optional[bool] = None
    enable_sound: Optional[bool] = None
    history_reset: Optional[str] = None

class ModelConfigUpdate(BaseModel):
    """
    Configuración del modelo de IA del bot
    """
    model_provider: Optional[str] = Field(None, description="Proveedor: OpenAI, Groq, Google AI o Anthropic")
    model_id: Optional[str] = Field(None, description="ID del modelo del proveedor")
    api_key: Optional[str] = Field(None, description="API key en texto plano; se cifra al guardarla")
    system_prompt: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, gt=0)
    advanced_mode: bool = Field(False, description="Si es falso se aplican los valores por defecto de la pestaña general")

class EscalationUpdate(BaseModel):
    enabled: bool = False
    whatsapp: Optional[str] = None
    email: Optional[str] = None

class ApiKeyUpdate(BaseModel):
    api_key: str = Field(..., min_length=1)

class EmbedTokenCreate(BaseModel):
    bot_id: str = Field(..., description="ID del bot a desplegar")
    domain: str = Field(..., description="Dominio autorizado (host o URL)")

class EmbedTokenResponse(BaseModel):
    id: str
    token: str
    domain: str
    domain_hash: str
    expires_at: int

class KnowledgeCreate(BaseModel):
    bot_id: str
    text: str = Field(..., min_length=1, description="Texto a añadir a la base de conocimiento")
    source_type: str = Field("inline", description="Origen: inline, pdf, website o notion")
    source_metadata: Optional[Dict[str, Any]] = Field(default=None, description="Metadatos del origen")

class KnowledgeUpdate(BaseModel):
    text: str = Field(..., min_length=1)

class PlaygroundMessage(BaseModel):
    bot_id: str
    message: str = Field(..., min_length=1)

class ConversationSummary(BaseModel):
    id: str
    bot_id: str
    integration: Optional[str] = None
    status: str
    topic: Optional[str] = None
    visitor_id: Optional[str] = None
    last_message_at: Optional[int] = None
    message_count: int = 0
    last_message: Optional[str] = None

class DocumentUsage(BaseModel):
    document_id: str
    count: int = 0
    last_used_at: int = 0

class KnowledgeStats(BaseModel):
    total_documents: int
    documents_used_last_period: int
    total_retrievals: int
    total_queries: int
    successful_retrieval_queries: int
    fallback_no_context_queries: int
    retrieval_coverage_percent: int = Field(..., ge=0, le=100)
    top_documents: List[DocumentUsage]
    document_usage: List[DocumentUsage]
    unused_document_ids: List[str]
    window_days: int

class AIMetrics(BaseModel):
    total_requests: int
    success_rate: float
    avg_execution_time_ms: int
    models_used: List[str]
    total_tokens: int
    total_context_characters: int
    errors: List[Dict[str, Any]]
    successful_responses: int
    failed_responses: int
    avg_knowledge_chunks_used: float
