# tenantbot/core/anthropic_client.py
from anthropic import AsyncAnthropic
import logging
from typing import Optional, Dict, Any, AsyncGenerator, List
import asyncio

from tenantbot.core.openai_client import CompletionResult, StreamChunk

logger = logging.getLogger(__name__)

# La API de Anthropic exige max_tokens
DEFAULT_MAX_TOKENS = 1024

class AnthropicChatClient:
    """Cliente de chat para Anthropic con la misma interfaz que OpenAIChatClient"""

    def __init__(self, api_key: str, timeout: float = 30.0):
        self.client = AsyncAnthropic(
            api_key=api_key,
            timeout=timeout
        )

    def _build_params(
        self,
        system: str,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: Optional[int],
        tools: Optional[List[Dict[str, str]]],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": model,
            "system": system,
            "messages": list(messages),
            "temperature": temperature,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        }
        if tools:
            params["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "input_schema": {"type": "object", "properties": {}},
                }
                for tool in tools
            ]
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
        params = self._build_params(system, messages, model, temperature, max_tokens, tools)

        for attempt in range(retry_count + 1):
            try:
                response = await self.client.messages.create(**params)

                text = "".join(
                    block.text for block in response.content if block.type == "text"
                )
                tool_calls = [
                    block.name for block in response.content if block.type == "tool_use"
                ]
                usage = response.usage
                return CompletionResult(
                    text=text,
                    tool_calls=tool_calls,
                    prompt_tokens=usage.input_tokens,
                    completion_tokens=usage.output_tokens,
                    total_tokens=usage.input_tokens + usage.output_tokens,
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
        params = self._build_params(system, messages, model, temperature, max_tokens, tools)

        for attempt in range(retry_count + 1):
            emitted = False
            tool_calls: List[str] = []
            try:
                async with self.client.messages.stream(**params) as stream:
                    async for event in stream:
                        if event.type == "content_block_start" and event.content_block.type == "tool_use":
                            tool_calls.append(event.content_block.name)
                        elif event.type == "text" and event.text:
                            emitted = True
                            yield StreamChunk(text=event.text)

                if tool_calls:
                    yield StreamChunk(tool_calls=tool_calls)
                break

            except Exception as e:
                logger.error(f"Error in stream_response (attempt {attempt + 1}): {str(e)}")
                if emitted or attempt == retry_count:
                    raise
                await asyncio.sleep(1)
