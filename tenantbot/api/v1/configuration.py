# tenantbot/api/v1/configuration.py
from fastapi import APIRouter, Depends, Query
from typing import Optional

from tenantbot.api.dependencies import get_tenant_context
from tenantbot.api.v1.webchat import get_bot_profile_manager
from tenantbot.core.bot_profiles import BotProfileManager
from tenantbot.models.schemas import ApiKeyUpdate, EscalationUpdate, ModelConfigUpdate, TenantContext

router = APIRouter(prefix="/configuration", tags=["configuration"])

@router.get("/model", summary="Configuración del modelo del bot")
async def get_model_config(
    bot_id: Optional[str] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return await manager.get_model_config(tenant, bot_id)

@router.put("/model", summary="Actualizar la configuración del modelo")
async def update_model_config(
    body: ModelConfigUpdate,
    bot_id: Optional[str] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    """
    Solo se modifican los campos enviados. La API key se guarda cifrada.

    Raises:
        HTTPException:
            - 400 si el proveedor no está soportado
            - 403 si el usuario no puede acceder al bot
    """
    return await manager.update_model_config(tenant, body.model_dump(exclude_unset=True), bot_id)

@router.put("/escalation", summary="Actualizar contactos de escalado")
async def update_escalation(
    body: EscalationUpdate,
    bot_id: Optional[str] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return await manager.update_escalation(tenant, body.enabled, body.whatsapp, body.email, bot_id)

@router.post("/api-key/rotate", summary="Rotar la API key del bot")
async def rotate_api_key(
    body: ApiKeyUpdate,
    bot_id: Optional[str] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return await manager.rotate_api_key(tenant, body.api_key, bot_id)
