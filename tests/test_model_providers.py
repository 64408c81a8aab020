import pytest

from tenantbot.core.anthropic_client import AnthropicChatClient
from tenantbot.core.model_providers import (
    ANTHROPIC,
    GOOGLE_AI,
    GROQ,
    OPENAI,
    create_chat_client,
    normalize_model_provider,
)
from tenantbot.core.openai_client import OpenAIChatClient


@pytest.mark.parametrize("value,expected", [
    ("OpenAI", OPENAI),
    ("openai", OPENAI),
    (" Groq ", GROQ),
    ("Google AI", GOOGLE_AI),
    ("google", GOOGLE_AI),
    ("GoogleAI", GOOGLE_AI),
    ("Anthropic", ANTHROPIC),
    ("mistral", None),
    ("", None),
    (None, None),
    (42, None),
])
def test_normalize_model_provider(value, expected):
    assert normalize_model_provider(value) == expected


def test_create_chat_client_per_provider():
    assert isinstance(create_chat_client(ANTHROPIC, "key"), AnthropicChatClient)

    groq = create_chat_client(GROQ, "key")
    assert isinstance(groq, OpenAIChatClient)
    assert "api.groq.com" in str(groq.client.base_url)

    google = create_chat_client(GOOGLE_AI, "key")
    assert "generativelanguage.googleapis.com" in str(google.client.base_url)


def test_create_chat_client_rejects_unknown_provider():
    with pytest.raises(ValueError):
        create_chat_client("mistral", "key")
