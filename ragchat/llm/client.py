"""LLM client interface and implementations."""

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ragchat.config import LLMSettings, get_settings
from ragchat.exceptions import ErrorCode, GenerationError
from ragchat.llm.models import GenerationResult, Message, Role
from ragchat.logging_config import get_logger
from ragchat.observability.metrics import track_llm_request

logger = get_logger(__name__)


class LLMClient(ABC):
    """Abstract base class for LLM clients.

    One call is one conversation turn; clients keep no state between calls.
    """

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        """Generate text from messages.

        Args:
            messages: Conversation messages.
            temperature: Sampling temperature override.
            max_tokens: Maximum tokens override.

        Returns:
            GenerationResult with generated text.

        Raises:
            GenerationError: If generation fails or returns no content.
        """
        ...

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        """Generate text from a single prompt.

        Args:
            prompt: User prompt.
            system_prompt: Optional system message sent before the prompt.
            temperature: Sampling temperature override.
            max_tokens: Maximum tokens override.

        Returns:
            GenerationResult with generated text.
        """
        messages: list[Message] = []

        if system_prompt:
            messages.append(Message(role=Role.SYSTEM, content=system_prompt))

        messages.append(Message(role=Role.USER, content=prompt))

        return await self.generate(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name."""
        ...

    async def close(self) -> None:
        """Release resources. Override if needed."""
        return None


class OpenAICompatibleClient(LLMClient):
    """LLM client for OpenAI-compatible chat completions APIs.

    Works with:
    - Groq (api.groq.com/openai/v1)
    - OpenAI API
    - Ollama (localhost:11434/v1)
    - vLLM
    """

    def __init__(
        self,
        settings: LLMSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the OpenAI-compatible client.

        Args:
            settings: LLM configuration.
            client: HTTP client (for testing).
        """
        self._settings = settings or get_settings().llm
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._settings.timeout)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        api_key = self._settings.api_key.get_secret_value()
        if api_key and api_key != "not-required":
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def generate(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        """Generate text using chat completions API."""
        url = f"{self._settings.base_url}/chat/completions"

        payload: dict[str, Any] = {
            "model": self._settings.model,
            "messages": [msg.to_payload() for msg in messages],
            "temperature": (
                temperature if temperature is not None else self._settings.temperature
            ),
            "max_tokens": max_tokens or self._settings.max_tokens,
        }

        start = time.perf_counter()
        try:
            result = await self._request(url, payload)
        except GenerationError:
            track_llm_request(self.model_name, time.perf_counter() - start, 0, 0, success=False)
            raise

        track_llm_request(
            result.model,
            time.perf_counter() - start,
            result.prompt_tokens,
            result.completion_tokens,
        )
        return result

    async def _request(self, url: str, payload: dict[str, Any]) -> GenerationResult:
        try:
            response = await self._client.post(url, json=payload, headers=self._headers())
            response.raise_for_status()

        except httpx.TimeoutException as e:
            logger.error(f"LLM request timed out: {e}")
            raise GenerationError(
                "LLM request timed out",
                code=ErrorCode.GENERATION_TIMEOUT,
                details={"timeout": self._settings.timeout},
            ) from e

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"LLM request failed: {status}")

            if status == 429:
                raise GenerationError(
                    "Rate limit exceeded",
                    code=ErrorCode.GENERATION_RATE_LIMIT,
                    details={"status_code": status},
                ) from e

            raise GenerationError(
                f"LLM service returned {status}",
                code=ErrorCode.GENERATION_SERVICE_ERROR,
                details={"status_code": status},
            ) from e

        except httpx.RequestError as e:
            logger.error(f"LLM connection error: {e}")
            raise GenerationError(
                f"Failed to connect to LLM service: {e}",
                code=ErrorCode.GENERATION_SERVICE_ERROR,
                details={"url": url},
            ) from e

        try:
            data = response.json()
            choice = data["choices"][0]
            content = choice["message"].get("content")
            finish_reason = choice.get("finish_reason")
            usage = data.get("usage") or {}
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise GenerationError(
                f"Invalid response from LLM: {e}",
                code=ErrorCode.GENERATION_SERVICE_ERROR,
                details={"error": str(e)},
            ) from e

        if not isinstance(content, str) or not content.strip():
            raise GenerationError(
                "LLM returned no content",
                code=ErrorCode.GENERATION_EMPTY_RESPONSE,
                details={"finish_reason": finish_reason},
            )

        return GenerationResult(
            content=content,
            model=data.get("model", self._settings.model),
            finish_reason=finish_reason,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        )
