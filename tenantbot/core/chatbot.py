import logging
import time
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from tenantbot.core.api_key_crypto import with_decrypted_api_key
from tenantbot.core.chat_memory import ConversationMemory
from tenantbot.core.database import Database, now_ms
from tenantbot.core.model_providers import create_chat_client, normalize_model_provider
from tenantbot.core.openai_client import CompletionResult
from tenantbot.core.prompting import (
    build_system_prompt,
    escalation_tools,
    finalize_reply,
    sanitize_tool_leak,
    stream_update_event,
)
from tenantbot.core.rag import RagContext, retrieve_rag_context

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7

class ReplyConfigError(Exception):
    """The bot cannot generate replies with its current configuration"""

class ChatbotService:
    """Genera las respuestas del bot: configuración, historial, RAG, modelo y registro"""

    def __init__(self, db: Database, client_factory: Optional[Callable[[str, str], Any]] = None):
        self.db = db
        self.client_factory = client_factory or create_chat_client

    async def _load_config(self, bot_id: str) -> Dict[str, Any]:
        """
        Carga la configuración del bot con la API key descifrada

        Raises:
            ReplyConfigError: si falta la configuración, el proveedor, el modelo o la key
        """
        bot = await self.db.get_bot_profile(bot_id)
        if not bot:
            raise ReplyConfigError("Bot configuration not found")

        config = with_decrypted_api_key(bot)
        if not config.get("model_provider") or not config.get("model_id"):
            raise ReplyConfigError("Model provider and model ID must be configured before generating responses")
        if not config.get("api_key"):
            raise ReplyConfigError(f"API key is not configured for {config['model_provider']}")

        provider = normalize_model_provider(config["model_provider"])
        if not provider:
            raise ReplyConfigError(f"Unsupported model provider: {config['model_provider']}")
        config["provider"] = provider
        return config

    async def _load_history(self, conversation_id: str, user_message: str) -> List[Dict[str, str]]:
        memory = ConversationMemory(self.db, conversation_id)
        await memory.load()
        memory.add_user_message(user_message)
        return memory.to_provider_messages()

    async def _retrieve_context(
        self,
        config: Dict[str, Any],
        conversation_id: str,
        user_message: str,
        user_id_for_logging: Optional[str],
    ) -> RagContext:
        try:
            return await retrieve_rag_context(
                self.db,
                config["id"],
                user_message,
                bot_config=config,
                conversation_id=conversation_id,
                user_id_for_logging=user_id_for_logging,
            )
        except Exception as e:
            logger.warning(f"Knowledge base retrieval failed, continuing without context: {str(e)}")
            return RagContext()

    async def _prepare(
        self,
        config: Dict[str, Any],
        conversation_id: str,
        user_message: str,
        user_id_for_logging: Optional[str],
    ) -> Dict[str, Any]:
        messages = await self._load_history(conversation_id, user_message)
        rag = await self._retrieve_context(config, conversation_id, user_message, user_id_for_logging)
        escalation = config.get("escalation")
        temperature = config.get("temperature")
        return {
            "messages": messages,
            "rag": rag,
            "system": build_system_prompt(config.get("system_prompt"), rag.context_block, escalation),
            "tools": escalation_tools(escalation),
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            "max_tokens": config.get("max_tokens"),
        }

    async def _log_ai_response(
        self,
        config: Dict[str, Any],
        conversation_id: str,
        user_message: str,
        bot_response: str,
        temperature: float,
        started: float,
        rag: RagContext,
        integration: str,
        success: bool,
        error_message: Optional[str] = None,
        result: Optional[CompletionResult] = None,
    ) -> None:
        """Registra las métricas de la respuesta; un fallo solo se registra como warning"""
        try:
            await self.db.insert_ai_log({
                "bot_id": config["id"],
                "conversation_id": conversation_id,
                "user_id": config.get("user_id"),
                "organization_id": config.get("organization_id"),
                "user_message": user_message,
                "bot_response": bot_response,
                "model": config.get("model_id"),
                "provider": config.get("model_provider"),
                "temperature": temperature,
                "execution_time_ms": int((time.monotonic() - started) * 1000),
                "knowledge_chunks_retrieved": rag.knowledge_chunks_count,
                "context_used": rag.context_block,
                "success": success,
                "error_message": error_message,
                "integration": integration,
                "tool_calls": result.tool_calls if result else None,
                "prompt_tokens": result.prompt_tokens if result else None,
                "completion_tokens": result.completion_tokens if result else None,
                "total_tokens": result.total_tokens if result else None,
                "created_at": now_ms(),
            })
        except Exception as e:
            logger.warning(f"Failed to log AI metrics: {str(e)}")

    async def generate_bot_response(
        self,
        bot_id: str,
        conversation_id: str,
        user_message: str,
        integration: str = "widget",
        user_id_for_logging: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Genera y guarda la respuesta del bot a un mensaje

        Nunca lanza por errores de configuración o del proveedor: devuelve
        success=False con el motivo. Un error del proveedor se guarda como
        mensaje del bot para que el usuario lo vea.

        Returns:
            Dict con success, content, model, provider y error
        """
        started = time.monotonic()
        logger.info(f"Generating response - bot: {bot_id}, conversation: {conversation_id}, integration: {integration}")

        try:
            config = await self._load_config(bot_id)
        except ReplyConfigError as e:
            logger.error(f"Cannot generate response for bot {bot_id}: {str(e)}")
            return {"success": False, "error": str(e)}

        prepared = await self._prepare(config, conversation_id, user_message, user_id_for_logging)
        rag = prepared["rag"]
        result: Optional[CompletionResult] = None

        try:
            client = self.client_factory(config["provider"], config["api_key"])
            result = await client.generate_response(
                system=prepared["system"],
                messages=prepared["messages"],
                model=config["model_id"],
                temperature=prepared["temperature"],
                max_tokens=prepared["max_tokens"],
                tools=prepared["tools"],
            )
            bot_response = finalize_reply(result.text, result.tool_calls, config.get("escalation"))
            success = True
            error_message = None
        except Exception as e:
            error_message = str(e)
            logger.error(f"Error generating AI response for bot {bot_id}: {error_message}")
            bot_response = (
                f"I encountered an error generating a response: {error_message}. "
                "Please check your API key and model configuration."
            )
            success = False

        await self.db.add_message({
            "conversation_id": conversation_id,
            "role": "bot",
            "content": bot_response,
        })

        await self._log_ai_response(
            config, conversation_id, user_message,
            bot_response if success else "",
            prepared["temperature"], started, rag, integration,
            success, error_message, result,
        )

        return {
            "success": success,
            "content": bot_response,
            "model": config["model_id"],
            "provider": config["model_provider"],
            "error": error_message,
        }

    async def stream_bot_response(
        self,
        bot_id: str,
        conversation_id: str,
        user_message: str,
        integration: str = "widget",
        user_id_for_logging: Optional[str] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Igual que generate_bot_response pero en streaming

        Crea un mensaje del bot vacío y lo actualiza a medida que llegan los
        fragmentos.

        Yields:
            {"type": "delta", "delta": str, "content": str} con el texto nuevo,
            donde content es el texto acumulado ya saneado;
            {"type": "replace", "content": str} cuando el saneado reescribe
            texto ya enviado; y al final {"type": "done", "success": bool, ...}
        """
        started = time.monotonic()

        try:
            config = await self._load_config(bot_id)
        except ReplyConfigError as e:
            logger.error(f"Cannot stream response for bot {bot_id}: {str(e)}")
            yield {"type": "done", "success": False, "error": str(e)}
            return

        prepared = await self._prepare(config, conversation_id, user_message, user_id_for_logging)
        rag = prepared["rag"]
        escalation = config.get("escalation")

        placeholder = await self.db.add_message({
            "conversation_id": conversation_id,
            "role": "bot",
            "content": "",
        })

        raw_text = ""
        full_text = ""
        tool_calls: List[str] = []
        leaked = False

        try:
            client = self.client_factory(config["provider"], config["api_key"])
            async for chunk in client.stream_response(
                system=prepared["system"],
                messages=prepared["messages"],
                model=config["model_id"],
                temperature=prepared["temperature"],
                max_tokens=prepared["max_tokens"],
                tools=prepared["tools"],
            ):
                tool_calls.extend(chunk.tool_calls)
                if not chunk.text:
                    continue

                raw_text += chunk.text
                sanitized, chunk_leaked = sanitize_tool_leak(raw_text)
                leaked = leaked or chunk_leaked
                event = stream_update_event(full_text, sanitized)
                full_text = sanitized
                if event:
                    await self.db.update_message(placeholder["id"], full_text)
                    yield event

        except Exception as e:
            error_message = str(e)
            logger.error(f"Error streaming AI response for bot {bot_id}: {error_message}")
            if not full_text:
                await self.db.update_message(
                    placeholder["id"],
                    f"I encountered an error generating a response: {error_message}. "
                    "Please check your API key and model configuration.",
                )
            await self._log_ai_response(
                config, conversation_id, user_message, "",
                prepared["temperature"], started, rag, integration,
                False, error_message, CompletionResult(text=full_text, tool_calls=tool_calls),
            )
            yield {"type": "done", "success": False, "error": f"Failed to stream response: {error_message}"}
            return

        final_text = finalize_reply(full_text, tool_calls, escalation, leaked=leaked)
        event = stream_update_event(full_text, final_text)
        if event:
            await self.db.update_message(placeholder["id"], final_text)
            yield event

        await self._log_ai_response(
            config, conversation_id, user_message, final_text,
            prepared["temperature"], started, rag, integration,
            True, None, CompletionResult(text=final_text, tool_calls=tool_calls),
        )

        yield {
            "type": "done",
            "success": True,
            "content": final_text,
            "model": config["model_id"],
            "provider": config["model_provider"],
        }
