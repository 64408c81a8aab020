# tenantbot/api/v1/embed_tokens.py
from fastapi import APIRouter, Depends, Path

from tenantbot.api.dependencies import get_tenant_context
from tenantbot.api.v1.webchat import get_bot_profile_manager
from tenantbot.core.bot_profiles import BotProfileManager
from tenantbot.models.schemas import EmbedTokenCreate, EmbedTokenResponse, TenantContext

router = APIRouter(prefix="/embed-tokens", tags=["embed-tokens"])

@router.post("", response_model=EmbedTokenResponse, summary="Generar token de embebido")
async def generate_embed_token(
    body: EmbedTokenCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    """
    Genera un token ligado al dominio indicado, válido durante un año.
    Solo el dueño del bot puede generarlo.
    """
    return await manager.generate_embed_token(tenant, body.bot_id, body.domain)

@router.post("/{embed_token_id}/revoke", summary="Revocar token de embebido")
async def revoke_embed_token(
    embed_token_id: str = Path(..., description="ID del token"),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return await manager.revoke_embed_token(tenant, embed_token_id)
