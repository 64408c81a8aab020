"""Named error conditions raised by the security and data layers.

Each class carries the HTTP status the API layer answers with. Messages are
human readable and are surfaced verbatim to the caller.
"""


class TenantBotError(Exception):
    """Base class for every error the API maps to a response"""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class CredentialError(TenantBotError):
    """A bearer credential (visitor session or embed token) was rejected"""

    status_code = 401
    default_message = "Invalid credential"


class InvalidSessionError(CredentialError):
    default_message = "Invalid session token"


class SessionRevokedError(CredentialError):
    default_message = "Session revoked"


class SessionExpiredError(CredentialError):
    default_message = "Session expired"


class InvalidTokenError(CredentialError):
    default_message = "Invalid token"


class TokenRevokedError(CredentialError):
    default_message = "Token revoked"


class TokenExpiredError(CredentialError):
    default_message = "Token expired"


class OriginRequiredError(CredentialError):
    default_message = "Origin required"


class DomainMismatchError(CredentialError):
    default_message = "Domain mismatch"


class UnauthenticatedError(TenantBotError):
    status_code = 401
    default_message = "Unauthorized: Must be logged in"


class UnauthorizedError(TenantBotError):
    status_code = 403
    default_message = "Unauthorized"


class NotFoundError(TenantBotError):
    status_code = 404
    default_message = "Not found"


class ConversationClosedError(TenantBotError):
    status_code = 409
    default_message = "Conversation is closed"


class RateLimitedError(TenantBotError):
    status_code = 429
    default_message = "Rate limited"
