import logging
from typing import Optional

logger = logging.getLogger(__name__)

OPENAI = "OpenAI"
GROQ = "Groq"
GOOGLE_AI = "Google AI"
ANTHROPIC = "Anthropic"

MODEL_PROVIDER_KEYS = (OPENAI, GROQ, GOOGLE_AI, ANTHROPIC)

# Endpoints compatibles con la API de OpenAI
OPENAI_COMPATIBLE_BASE_URLS = {
    OPENAI: None,
    GROQ: "https://api.groq.com/openai/v1",
    GOOGLE_AI: "https://generativelanguage.googleapis.com/v1beta/openai/",
}

_ALIASES = {
    "google": GOOGLE_AI,
    "googleai": GOOGLE_AI,
    "google ai": GOOGLE_AI,
    "openai": OPENAI,
    "groq": GROQ,
    "anthropic": ANTHROPIC,
}

def normalize_model_provider(provider) -> Optional[str]:
    """
    Normaliza el nombre de un proveedor a su clave canónica

    Las claves canónicas se conservan; los alias antiguos o de la UI se
    traducen sin distinguir mayúsculas. Devuelve None si no está soportado.
    """
    if not isinstance(provider, str):
        return None

    trimmed = provider.strip()
    if not trimmed:
        return None

    if trimmed in MODEL_PROVIDER_KEYS:
        return trimmed

    return _ALIASES.get(trimmed.lower())

def create_chat_client(provider: str, api_key: str):
    """
    Crea el cliente de chat para un proveedor ya normalizado

    Raises:
        ValueError: si el proveedor no está soportado
    """
    from tenantbot.core.anthropic_client import AnthropicChatClient
    from tenantbot.core.openai_client import OpenAIChatClient

    if provider == ANTHROPIC:
        return AnthropicChatClient(api_key=api_key)
    if provider in OPENAI_COMPATIBLE_BASE_URLS:
        return OpenAIChatClient(api_key=api_key, base_url=OPENAI_COMPATIBLE_BASE_URLS[provider])
    raise ValueError(f"Unsupported model provider: {provider}")
