from supabase import create_client, Client
import logging
from typing import Optional

from tenantbot.config.settings import get_settings

logger = logging.getLogger(__name__)

# Variables globales
_supabase_client: Optional[Client] = None

def initialize_supabase() -> None:
    """Inicializa el cliente de Supabase"""
    global _supabase_client

    try:
        settings = get_settings()
        supabase_url = settings.supabase_url
        supabase_key = settings.supabase_key

        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables are required")

        logger.info("Initializing Supabase client...")
        logger.info(f"Supabase URL: {supabase_url}")

        _supabase_client = create_client(supabase_url, supabase_key)

        # Probar conexión
        response = _supabase_client.table('bot_profiles').select('id').limit(1).execute()
        record_count = len(response.data) if response.data else 0
        logger.info(f"Test query successful, found {record_count} records")

    except Exception as e:
        logger.error(f"Error initializing Supabase client: {str(e)}")
        raise

def set_client(client: Optional[Client]) -> None:
    """Replaces the process-wide client (used by tests and scripts)"""
    global _supabase_client
    _supabase_client = client

def get_client() -> Client:
    """Obtiene el cliente de Supabase inicializado"""
    if not _supabase_client:
        raise RuntimeError("Supabase client not initialized. Call initialize_supabase() first.")
    return _supabase_client
