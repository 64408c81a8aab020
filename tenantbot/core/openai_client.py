# tenantbot/core/openai_client.py
from openai import AsyncOpenAI
import logging
from typing import Optional, Dict, Any, AsyncGenerator, List
from dataclasses import dataclass, field
import asyncio

from tenantbot.config.settings import get_settings

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

@dataclass
class CompletionResult:
    """Resultado unificado de una llamada a cualquier proveedor"""
    text: str
    tool_calls: List[str] = field(default_factory=list)
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

@dataclass
class StreamChunk:
    """Fragmento de una respuesta en streaming: texto o nombres de herramientas invocadas"""
    text: str = ""
    tool_calls: List[str] = field(default_factory=list)

class OpenAIChatClient:
    """Cliente de chat para OpenAI y endpoints compatibles (Groq, Google AI)"""

    def __init__(self, api_key: str, base_url: Optional[str] = None, timeout: float = 30.0):
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout
        )

    def _build_messages(self, system: str, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        return [{"role": "system", "content": system}] + list(messages)

    def _build_tools(self, tools: Optional[List[Dict[str, str]]]) -> Optional[List[Dict[str, Any]]]:
        if not tools:
            return None
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]

    def _build_params(
        self,
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        tools: Optional[List[Dict[str, str]]],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"model": model, "temperature": temperature}
        if max_tokens:
            params["max_tokens"] = max_tokens
        openai_tools = self._build_tools(tools)
        if openai_tools:
            params["tools"] = openai_tools
        return params

    async def generate_response(
        self,
        system: str,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        tools: Optional[List[Dict[str, str]]] = None,
        retry_count: int = 2
    ) -> CompletionResult:
        """
        Genera una respuesta completa con reintentos

        Args:
            system: Prompt del sistema
            messages: Historial en formato {"role", "content"} (user/assistant)
            model: ID del modelo del proveedor
            temperature: Temperatura de muestreo
            max_tokens: Límite opcional de tokens de salida
            tools: Herramientas opcionales ({"name", "description"}) sin parámetros
            retry_count: Número de reintentos en caso de error

        Returns:
            CompletionResult con el texto, las herramientas llamadas y el uso de tokens
        """
        params = self._build_params(model, temperature, max_tokens, tools)

        for attempt in range(retry_count + 1):
            try:
                response = await self.client.chat.completions.create(
                    messages=self._build_messages(system, messages),
                    **params
                )

                message = response.choices[0].message
                tool_calls = [
                    call.function.name
                    for call in (message.tool_calls or [])
                    if call.function and call.function.name
                ]
                usage = response.usage
                return CompletionResult(
                    text=message.content or "",
                    tool_calls=tool_calls,
                    prompt_tokens=usage.prompt_tokens if usage else None,
                    completion_tokens=usage.completion_tokens if usage else None,
                    total_tokens=usage.total_tokens if usage else None,
                )

            except Exception as e:
                logger.error(f"Error in attempt {attempt + 1}: {str(e)}")
                if attempt == retry_count:
                    raise
                await asyncio.sleep(1)

    async def stream_response(
        self,
        system: str,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        tools: Optional[List[Dict[str, str]]] = None,
        retry_count: int = 2
    ) -> AsyncGenerator[StreamChunk, None]:
        """
        Genera una respuesta en streaming

        Solo se reintenta si el error ocurre antes de emitir el primer fragmento.

        Yields:
            StreamChunk con texto; al final, uno con las herramientas invocadas si las hubo
        """
        params = self._build_params(model, temperature, max_tokens, tools)
        params["stream"] = True

        for attempt in range(retry_count + 1):
            emitted = False
            tool_calls: List[str] = []
            try:
                stream = await self.client.chat.completions.create(
                    messages=self._build_messages(system, messages),
                    **params
                )

                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    for call in (delta.tool_calls or []):
                        if call.function and call.function.name:
                            tool_calls.append(call.function.name)
                    if delta.content:
                        emitted = True
                        yield StreamChunk(text=delta.content)

                if tool_calls:
                    yield StreamChunk(tool_calls=tool_calls)
                break

            except Exception as e:
                logger.error(f"Error in stream_response (attempt {attempt + 1}): {str(e)}")
                if emitted or attempt == retry_count:
                    raise
                await asyncio.sleep(1)

class EmbeddingClient:
    """Embeddings de Gemini a través del endpoint compatible con OpenAI"""

    def __init__(self, api_key: str, model: Optional[str] = None, dimensions: Optional[int] = None):
        settings = get_settings()
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=GEMINI_OPENAI_BASE_URL,
            timeout=30.0
        )

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions
            )
            return list(response.data[0].embedding)
        except Exception as e:
            logger.error(f"Error generating embedding: {str(e)}")
            raise
