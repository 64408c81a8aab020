"""Tenant and visitor-session security.

Opaque credential issuance and validation for the public widget (visitor
sessions and domain-bound embed tokens), tenant/resource authorization and
secret redaction. Every failed check raises a named ``TenantBotError``
subclass that the API layer turns into an HTTP response.
"""
import logging
import random
import secrets
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

from tenantbot.config.settings import get_settings
from tenantbot.core.database import Database, now_ms
from tenantbot.core.errors import (
    DomainMismatchError,
    InvalidSessionError,
    InvalidTokenError,
    NotFoundError,
    OriginRequiredError,
    RateLimitedError,
    SessionExpiredError,
    SessionRevokedError,
    TokenExpiredError,
    TokenRevokedError,
    UnauthorizedError,
)
from tenantbot.models.schemas import OrgRole, TenantContext

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = frozenset({
    "api_key",
    "_encrypted_api_key",
    "authorization",
    "auth_token",
    "token",
    "session_token",
    "serverSecret",
    "secret",
    "password",
})

# Los tokens de localhost guardan este valor literal en lugar de un hash
LOCALHOST_DOMAIN_HASH = "localhost"

PUBLIC_BOT_PROFILE_FIELDS = (
    "avatar_url",
    "bot_names",
    "bot_description",
    "msg_placeholder",
    "primary_color",
    "font",
    "theme_mode",
    "header_style",
    "message_style",
    "corner_radius",
    "enable_feedback",
    "enable_file_upload",
    "enable_sound",
    "history_reset",
)

ADMIN_ROLES = (OrgRole.OWNER, OrgRole.ADMIN)

# ===== Tokens y dominios =====

def _fnv1a_hex(value: str) -> str:
    """FNV-1a 32-bit over the UTF-8 bytes, as 8 hex chars"""
    h = 0x811C9DC5
    for byte in value.encode("utf-8"):
        h ^= byte
        h = (h * 0x01000193) & 0xFFFFFFFF
    return f"{h:08x}"

def hash_domain_to_hex16(domain: str) -> str:
    """Non-cryptographic 16 hex char fingerprint of a normalized domain"""
    return _fnv1a_hex(f"d1:{domain}") + _fnv1a_hex(f"d2:{domain}")

def normalize_domain(value: str) -> str:
    """
    Normaliza un dominio o URL a su hostname en minúsculas

    Acepta tanto "example.com" como "https://example.com:8080/path".

    Raises:
        ValueError: si la entrada no contiene un hostname válido
    """
    trimmed = (value or "").strip().lower()
    as_url = trimmed if "://" in trimmed else f"https://{trimmed}"
    parsed = urlsplit(as_url)
    hostname = parsed.hostname
    if not hostname or any(ch.isspace() for ch in hostname):
        raise ValueError(f"Invalid domain: {value!r}")
    # Lanza ValueError si el puerto no es válido
    _ = parsed.port
    try:
        return hostname.encode("idna").decode("ascii")
    except UnicodeError:
        raise ValueError(f"Invalid domain: {value!r}")

def _domain_hash_for_storage(hostname: str) -> str:
    if hostname == "localhost":
        return LOCALHOST_DOMAIN_HASH
    return hash_domain_to_hex16(hostname)

def generate_opaque_token() -> str:
    """High-entropy random token from the OS CSPRNG"""
    try:
        return secrets.token_hex(32)
    except NotImplementedError:
        logger.warning("No secure randomness source available, using a low-quality token")
        return f"{int(time.time() * 1000)}_{random.getrandbits(64):x}_{random.getrandbits(64):x}"

# ===== Sesiones de visitante =====

async def require_valid_visitor_session(
    db: Database,
    session_token: str,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Valida un token de sesión de visitante

    El orden de las comprobaciones es: existencia, expiración y revocación.

    Raises:
        InvalidSessionError, SessionRevokedError, SessionExpiredError
    """
    now = now if now is not None else now_ms()
    session = await db.get_visitor_session_by_token(session_token) if session_token else None

    if not session:
        raise InvalidSessionError()
    if session["expires_at"] < now:
        raise SessionExpiredError()
    if session.get("revoked"):
        raise SessionRevokedError()

    return session

async def create_visitor_session(
    db: Database,
    bot_id: str,
    visitor_id: str,
    organization_id: Optional[str] = None,
    conversation_id: Optional[str] = None,
    ttl_ms: Optional[int] = None,
    ip_address: Optional[str] = None,
    user_agent_hash: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[str, int]:
    """Issues a visitor session and returns (session_token, expires_at)"""
    now = now if now is not None else now_ms()
    if ttl_ms is None:
        ttl_ms = get_settings().visitor_session_ttl_ms
    expires_at = now + ttl_ms
    token = generate_opaque_token()

    await db.create_visitor_session({
        "session_token": token,
        "bot_id": bot_id,
        "visitor_id": visitor_id,
        "organization_id": organization_id,
        "conversation_id": conversation_id,
        "created_at": now,
        "expires_at": expires_at,
        "revoked": False,
        "ip_address": ip_address,
        "user_agent_hash": user_agent_hash,
    })

    return token, expires_at

# ===== Tokens de embebido =====

async def require_valid_embed_token(
    db: Database,
    token: str,
    current_domain: Optional[str] = None,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Valida un token de embebido y su vínculo con el dominio que lo usa

    Los tokens de localhost aceptan un origen ausente o localhost. El resto
    exige origen y que el hash del dominio normalizado coincida.

    Raises:
        InvalidTokenError, TokenRevokedError, TokenExpiredError,
        OriginRequiredError, DomainMismatchError
    """
    now = now if now is not None else now_ms()
    embed_token = await db.get_embed_token_by_token(token) if token else None

    if not embed_token:
        raise InvalidTokenError()
    if embed_token["expires_at"] < now:
        raise TokenExpiredError()
    if embed_token.get("revoked"):
        raise TokenRevokedError()

    is_localhost_token = embed_token.get("domain_hash") == LOCALHOST_DOMAIN_HASH

    if not current_domain:
        if not is_localhost_token:
            raise OriginRequiredError()
        return embed_token

    try:
        normalized = normalize_domain(current_domain)
    except ValueError:
        raise DomainMismatchError()

    if is_localhost_token:
        if normalized != "localhost":
            raise DomainMismatchError()
        return embed_token

    if hash_domain_to_hex16(normalized) != embed_token.get("domain_hash"):
        raise DomainMismatchError()

    return embed_token

async def create_embed_token(
    db: Database,
    bot: Dict[str, Any],
    domain: str,
    expires_at: int,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """Stores a new embed token bound to the normalized domain"""
    now = now if now is not None else now_ms()
    normalized = normalize_domain(domain)
    domain_hash = _domain_hash_for_storage(normalized)
    token = generate_opaque_token()

    row = await db.create_embed_token({
        "token": token,
        "bot_id": bot["id"],
        "user_id": bot.get("user_id"),
        "organization_id": bot.get("organization_id"),
        "domain": normalized,
        "domain_hash": domain_hash,
        "created_at": now,
        "expires_at": expires_at,
        "revoked": False,
        "requests_today": 0,
        "last_request": None,
    })

    return {
        "id": row["id"],
        "token": token,
        "domain": normalized,
        "domain_hash": domain_hash,
        "expires_at": expires_at,
    }

# ===== Autorización de recursos =====

def can_access_resource(resource: Optional[Dict[str, Any]], tenant: TenantContext) -> bool:
    """True when the caller owns the resource or shares its organization with a role there"""
    if not resource:
        return False

    owner = resource.get("user_id")
    if owner and owner == tenant.user_id:
        return True

    organization_id = resource.get("organization_id")
    return bool(
        tenant.org_id
        and tenant.org_role is not None
        and organization_id
        and organization_id == tenant.org_id
    )

def assert_can_access_resource(
    resource: Optional[Dict[str, Any]],
    tenant: TenantContext,
    message: str = "Unauthorized",
) -> Dict[str, Any]:
    if not can_access_resource(resource, tenant):
        raise UnauthorizedError(message)
    return resource

def assert_is_owner(
    resource: Optional[Dict[str, Any]],
    tenant: TenantContext,
    message: str = "Unauthorized: Not owner",
) -> Dict[str, Any]:
    if not resource or resource.get("user_id") != tenant.user_id:
        raise UnauthorizedError(message)
    return resource

def assert_org_admin(tenant: TenantContext, message: str = "Unauthorized: Must be org admin") -> None:
    if not tenant.org_id or tenant.org_role not in ADMIN_ROLES:
        raise UnauthorizedError(message)

def assert_conversation_owned_by_visitor_session(
    conversation: Dict[str, Any],
    session: Dict[str, Any],
) -> None:
    if conversation.get("bot_id") != session.get("bot_id"):
        raise UnauthorizedError("Unauthorized: Wrong bot")
    visitor_id = conversation.get("visitor_id")
    if not visitor_id or visitor_id != session.get("visitor_id"):
        raise UnauthorizedError("Unauthorized: Wrong visitor")

async def assert_rate_limit_messages_per_window(
    db: Database,
    conversation_id: str,
    limit: int,
    window_ms: int,
    now: Optional[int] = None,
    message: str = "Rate limited",
) -> None:
    now = now if now is not None else now_ms()
    count = await db.count_messages_since(conversation_id, now - window_ms)
    if count >= limit:
        raise RateLimitedError(message)

async def require_bot_profile(db: Database, bot_id: str) -> Dict[str, Any]:
    bot = await db.get_bot_profile(bot_id)
    if not bot:
        raise NotFoundError("Bot not found")
    return bot

# ===== Redacción =====

def redact_secrets(value: Any) -> Any:
    """
    Devuelve una copia con los valores de claves sensibles ocultos

    Recorre diccionarios y listas de forma recursiva. Los valores falsos
    (None, "") se conservan tal cual. La entrada no se modifica.
    """
    if isinstance(value, list):
        return [redact_secrets(item) for item in value]
    if not isinstance(value, dict):
        return value

    result = {}
    for key, val in value.items():
        if key in SENSITIVE_KEYS:
            result[key] = REDACTED if val else val
        else:
            result[key] = redact_secrets(val)
    return result

def redact_bot_profile_secrets(bot: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(bot)
    for key in ("api_key", "_encrypted_api_key"):
        if key in result:
            result[key] = REDACTED if result[key] else result[key]
    return result

def to_public_bot_profile(bot: Dict[str, Any]) -> Dict[str, Any]:
    """Widget-safe projection of a bot profile"""
    public = {"id": bot["id"]}
    for field in PUBLIC_BOT_PROFILE_FIELDS:
        public[field] = bot.get(field)
    return public
