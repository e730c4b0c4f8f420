import json
import logging
import os
from typing import Any, AsyncGenerator, Dict, Optional

from openai import APIStatusError, AsyncOpenAI

from app.models.stream_types import ChatMessage
from app.services.llm_config_service import LLMConfigService

# Configure logger
logger = logging.getLogger(__name__)

# Fallback configuration when no active configuration exists in the database
DEFAULT_BASE_URL = os.getenv("AI_GATEWAY_BASE_URL", "https://ai.gateway.lovable.dev/v1")
DEFAULT_MODEL = os.getenv("AI_GATEWAY_MODEL", "google/gemini-2.5-flash")
API_KEY_ENV = "AI_GATEWAY_API_KEY"

_STATUS_MESSAGES = {
    429: "Rate limits exceeded, please try again later.",
    402: "Payment required, please add funds to your workspace.",
}


class AIGatewayError(Exception):
    """Upstream completion API refused or failed a request"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def gateway_error_from_status(error: APIStatusError) -> AIGatewayError:
    """Map an upstream status error to the message shown to users."""
    status = error.status_code
    if status in _STATUS_MESSAGES:
        return AIGatewayError(status, _STATUS_MESSAGES[status])
    logger.error(f"AI gateway error: {status} {error.message}")
    return AIGatewayError(500, "AI gateway error")


class AIGatewayService:
    def __init__(self, config_service: Optional[LLMConfigService] = None):
        self.config_service = config_service or LLMConfigService()
        self.client: Optional[AsyncOpenAI] = None
        self.model = None
        self.base_url = None
        self.api_key = None

        # Load initial configuration
        self._load_active_configuration()

    def _load_active_configuration(self):
        """
        Load the active LLM configuration from database.
        Falls back to environment defaults if no active configuration exists.
        """
        try:
            config = self.config_service.get_active_configuration()
        except Exception as e:
            logger.error(f"Error loading LLM configuration: {e}")
            config = None

        if config:
            self.base_url = config.base_url
            self.api_key = config.api_key
            self.model = config.model_name
            logger.info(f"Loaded LLM configuration from database: {config.name}")
        else:
            self.base_url = DEFAULT_BASE_URL
            self.api_key = os.getenv(API_KEY_ENV)
            self.model = DEFAULT_MODEL
            logger.warning(
                f"No active LLM configuration found in database. "
                f"Using default gateway: {DEFAULT_BASE_URL}"
            )

        logger.info(f"   - Base URL: {self.base_url}")
        logger.info(f"   - Model: {self.model}")

        if self.api_key:
            self.client = AsyncOpenAI(base_url=self.base_url, api_key=self.api_key)
        else:
            self.client = None
            logger.warning(f"{API_KEY_ENV} is not configured, AI requests will fail")

    def reload_configuration(self):
        """
        Reload configuration from database (called when active config changes).
        This allows switching endpoints without restarting the service.
        """
        logger.info("Reloading LLM configuration...")
        self._load_active_configuration()

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise AIGatewayError(500, f"{API_KEY_ENV} is not configured")
        return self.client

    async def stream_chat_bytes(
        self, messages: list[ChatMessage]
    ) -> AsyncGenerator[bytes, None]:
        """
        Stream a chat completion as raw server-sent event bytes.

        The upstream framing is passed through untouched so callers can
        either proxy it or assemble it themselves.

        Raises:
            AIGatewayError: If the gateway rejects the request
        """
        client = self._require_client()
        logger.info(
            f"[LLM] stream_chat_bytes - Using model: {self.model}, base_url: {self.base_url}"
        )

        try:
            async with client.chat.completions.with_streaming_response.create(
                model=self.model,
                messages=messages,
                stream=True,
            ) as response:
                async for chunk in response.iter_bytes():
                    yield chunk
        except APIStatusError as e:
            raise gateway_error_from_status(e) from e

    async def create_tool_call(
        self,
        messages: list[ChatMessage],
        tool: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Run a completion that must answer through the given function tool.

        Args:
            messages: Conversation to send
            tool: OpenAI function tool definition

        Returns:
            Parsed tool arguments, or None if the model made no tool call

        Raises:
            AIGatewayError: If the gateway rejects the request
        """
        client = self._require_client()
        tool_name = tool["function"]["name"]
        logger.info(f"[LLM] create_tool_call - tool: {tool_name}, model: {self.model}")

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=[tool],
                tool_choice={"type": "function", "function": {"name": tool_name}},
            )
        except APIStatusError as e:
            raise gateway_error_from_status(e) from e

        tool_calls = response.choices[0].message.tool_calls if response.choices else None
        if not tool_calls:
            logger.error("No tool call in response")
            return None

        try:
            return json.loads(tool_calls[0].function.arguments)
        except json.JSONDecodeError as e:
            logger.error(f"Tool call arguments are not valid JSON: {e}")
            return None

    async def test_connection(self) -> Dict[str, Any]:
        """
        Test connection to the AI gateway
        """
        try:
            client = self._require_client()
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "Hello, are you working?"}],
            )

            return {
                "status": "connected",
                "model": self.model,
                "response": response.choices[0].message.content,
            }

        except Exception as e:
            return {"status": "error", "error": str(e)}


# Global instance
# Shared by every router so all requests use the same active configuration.
ai_gateway_service = AIGatewayService()
