from .supabase_client import get_client
from .database import Database
from .chatbot import ChatbotService
from .errors import TenantBotError

__all__ = [
    'get_client',
    'Database',
    'ChatbotService',
    'TenantBotError',
]
