# tenantbot/config/settings.py
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional
import logging
import os

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # Configuración general de la aplicación
    app_name: str = "TenantBot API"
    port: int = int(os.getenv("PORT", "8000"))
    base_url: str = os.getenv("BASE_URL", "http://localhost:8000")
    environment: str = os.getenv("ENVIRONMENT", "development")
    cors_origins: List[str] = ["*"]

    # Supabase (almacenamiento y autenticación)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_key: str = ""

    # Proveedores de IA
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    google_generative_ai_api_key: Optional[str] = None
    embedding_model: str = "gemini-embedding-001"
    embedding_dimensions: int = 768
    rag_limit: int = 4

    # Cifrado de API keys de los bots
    api_key_encryption_secret: Optional[str] = None

    # Sesiones públicas del widget
    visitor_session_ttl_ms: int = 24 * 60 * 60 * 1000
    embed_token_ttl_ms: int = 365 * 24 * 60 * 60 * 1000
    public_message_rate_limit: int = 20
    public_message_rate_window_ms: int = 60 * 1000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"
        validate_default = True

    @property
    def supabase_key(self) -> str:
        """Service key when present, anon key otherwise"""
        return self.supabase_service_key or self.supabase_anon_key

    @property
    def embedding_api_key(self) -> Optional[str]:
        return self.google_generative_ai_api_key or self.google_api_key

    def validate_required_settings(self):
        """Validar configuraciones requeridas basadas en el entorno"""
        if self.environment == "production":
            if not self.supabase_url or not self.supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required in production")
            if not self.api_key_encryption_secret:
                raise ValueError("API_KEY_ENCRYPTION_SECRET is required in production")

@lru_cache()
def get_settings() -> Settings:
    try:
        settings = Settings()
        if os.getenv("ENVIRONMENT") == "production":
            settings.validate_required_settings()
        return settings
    except Exception as e:
        logger.error(f"Error loading settings: {str(e)}")
        # En desarrollo, permitir valores por defecto
        if os.getenv("ENVIRONMENT") != "production":
            return Settings(_env_file=None)
        raise
