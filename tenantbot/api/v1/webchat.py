# tenantbot/api/v1/webchat.py
from fastapi import APIRouter, Depends, Query
from typing import Optional

from tenantbot.api.dependencies import get_database, get_tenant_context
from tenantbot.core.bot_profiles import BotProfileManager
from tenantbot.core.database import Database
from tenantbot.models.schemas import BotProfileUpdate, TenantContext

router = APIRouter(prefix="/webchat", tags=["webchat"])

def get_bot_profile_manager(db: Database = Depends(get_database)) -> BotProfileManager:
    return BotProfileManager(db)

@router.get("/profile", summary="Perfil del bot del usuario")
async def get_profile(
    bot_id: Optional[str] = Query(None, description="ID del bot; por defecto el primero del usuario"),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    """
    Devuelve el perfil sin material de API key y con el indicador has_api_key.
    Si el usuario aún no tiene bot, devuelve null.
    """
    return await manager.get_profile(tenant, bot_id)

@router.post("/profile", summary="Crear el perfil por defecto si no existe")
async def ensure_profile(
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return await manager.ensure_profile(tenant)

@router.patch("/profile", summary="Actualizar apariencia y funcionalidades del bot")
async def update_profile(
    body: BotProfileUpdate,
    bot_id: Optional[str] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return await manager.update_profile(tenant, body.model_dump(exclude_unset=True), bot_id)

@router.get("/profiles", summary="Perfiles accesibles para el usuario")
async def list_profiles(
    tenant: TenantContext = Depends(get_tenant_context),
    manager: BotProfileManager = Depends(get_bot_profile_manager),
):
    return {"profiles": await manager.list_profiles(tenant)}
