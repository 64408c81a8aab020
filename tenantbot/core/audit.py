import logging
from typing import Any, Dict, Optional

from tenantbot.core.database import Database, now_ms
from tenantbot.core.errors import UnauthorizedError
from tenantbot.core.security import redact_secrets
from tenantbot.models.schemas import AuditStatus, TenantContext

logger = logging.getLogger(__name__)

async def log_audit(
    db: Database,
    user_id: str,
    action: str,
    resource_type: str,
    status: AuditStatus,
    organization_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    error_message: Optional[str] = None,
    before: Any = None,
    after: Any = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Registra una entrada en el log de auditoría

    Los valores before/after pasan por redact_secrets antes de guardarse.
    """
    changes = None
    if before is not None or after is not None:
        changes = {
            "before": redact_secrets(before),
            "after": redact_secrets(after),
        }

    return await db.insert_audit_log({
        "user_id": user_id,
        "organization_id": organization_id,
        "action": action,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "status": AuditStatus(status).value,
        "error_message": error_message,
        "changes": changes,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "timestamp": timestamp if timestamp is not None else now_ms(),
    })

class AuditedAction:
    """
    Context manager que registra exactamente una entrada de auditoría por operación

    Uso:
        async with AuditedAction(db, tenant, "update_bot_profile", "bot_profile", bot_id) as audit:
            ...
            audit.after = updated

    Un UnauthorizedError se registra como "denied", cualquier otra excepción
    como "error"; en ambos casos la excepción se vuelve a lanzar.
    """

    def __init__(
        self,
        db: Database,
        tenant: TenantContext,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
    ):
        self.db = db
        self.tenant = tenant
        self.action = action
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.before: Any = None
        self.after: Any = None

    async def __aenter__(self) -> "AuditedAction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            status = AuditStatus.SUCCESS
            error_message = None
        elif isinstance(exc, UnauthorizedError):
            status = AuditStatus.DENIED
            error_message = str(exc)
        else:
            status = AuditStatus.ERROR
            error_message = str(exc)

        try:
            await log_audit(
                self.db,
                user_id=self.tenant.user_id,
                organization_id=self.tenant.org_id,
                action=self.action,
                resource_type=self.resource_type,
                resource_id=self.resource_id,
                status=status,
                error_message=error_message,
                before=self.before,
                after=self.after,
            )
        except Exception as e:
            if exc is None:
                raise
            logger.error(f"Error writing audit log for {self.action}: {str(e)}")
        return False
