# tenantbot/api/dependencies.py
from fastapi import Depends, Header
from typing import Optional
import logging

from tenantbot.core.chatbot import ChatbotService
from tenantbot.core.database import Database
from tenantbot.core.errors import UnauthenticatedError
from tenantbot.core.supabase_client import get_client
from tenantbot.models.schemas import OrgRole, TenantContext

logger = logging.getLogger(__name__)

def get_database() -> Database:
    return Database(get_client())

def get_chatbot_service(db: Database = Depends(get_database)) -> ChatbotService:
    return ChatbotService(db)

def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

async def resolve_user_id(authorization: Optional[str]) -> str:
    """
    Valida el JWT del usuario contra Supabase Auth

    Raises:
        UnauthenticatedError: si falta el token o no es válido
    """
    token = _bearer_token(authorization)
    if not token:
        raise UnauthenticatedError()

    try:
        response = get_client().auth.get_user(token)
    except Exception as e:
        logger.warning(f"Rejected identity token: {str(e)}")
        raise UnauthenticatedError()

    user = getattr(response, "user", None)
    if not user or not getattr(user, "id", None):
        raise UnauthenticatedError()
    return user.id

async def get_tenant_context(
    authorization: Optional[str] = Header(None),
    x_organization_id: Optional[str] = Header(None),
    db: Database = Depends(get_database),
) -> TenantContext:
    """
    Contexto del tenant: usuario autenticado y, si se indica, su organización activa

    Una membresía inexistente o deshabilitada deja el contexto sin rol.
    """
    user_id = await resolve_user_id(authorization)

    if not x_organization_id:
        return TenantContext(user_id=user_id)

    membership = await db.get_org_membership(x_organization_id, user_id)
    role = None
    if membership and not membership.get("disabled") and membership.get("role") in {r.value for r in OrgRole}:
        role = OrgRole(membership["role"])

    return TenantContext(user_id=user_id, org_id=x_organization_id, org_role=role)
