"""LLM client with retry logic and rate limiting."""

import asyncio
import time
from typing import Any, Dict, List, Optional

from loguru import logger
from openai import APIError, APITimeoutError, AsyncOpenAI, OpenAI, RateLimitError

from ..config import Settings
from ..errors import LLMError, LLMRateLimitError, LLMTimeoutError
from .base import BaseLLMClient

INITIAL_RETRY_DELAY = 1.0
BACKOFF_MULTIPLIER = 2.0


class LLMClient(BaseLLMClient):
    """OpenAI API client with automatic retry and exponential backoff."""

    def __init__(self, settings: Settings):
        """Initialize LLM client with OpenAI credentials."""
        self.settings = settings
        client_kwargs: Dict[str, Any] = {
            "api_key": settings.api_key or "local",
            "timeout": settings.request_timeout,
        }
        if settings.base_url:
            client_kwargs["base_url"] = settings.base_url
        self.client = OpenAI(**client_kwargs)
        self.async_client = AsyncOpenAI(**client_kwargs)
        self.model = settings.model
        self.temperature = settings.temperature
        self.max_retries = settings.max_retries

    def _request_kwargs(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float],
        max_tokens: Optional[int],
        json_mode: bool,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def _log_response(self, response: Any, start_time: float, label: str) -> str:
        latency = (time.time() - start_time) * 1000
        content = response.choices[0].message.content or ""
        tokens_used = response.usage.total_tokens if response.usage else 0
        logger.debug(
            f"{label}: {len(content)} chars, "
            f"{tokens_used} tokens, {latency:.0f}ms"
        )
        return content

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> str:
        """Send synchronous chat completion request with retry logic."""
        request = self._request_kwargs(messages, temperature, max_tokens, json_mode)
        retry_delay = INITIAL_RETRY_DELAY

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                response = self.client.chat.completions.create(**request)
                return self._log_response(response, start_time, "LLM response")

            except RateLimitError as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Rate limit hit, retrying in {retry_delay}s... "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(retry_delay)
                    retry_delay *= BACKOFF_MULTIPLIER
                else:
                    logger.error(f"Rate limit exceeded after {self.max_retries} attempts")
                    raise LLMRateLimitError(str(e)) from e

            except APITimeoutError as e:
                logger.error(f"LLM request timed out: {e}")
                raise LLMTimeoutError(str(e)) from e

            except APIError as e:
                logger.error(f"LLM request failed: {e}")
                raise LLMError(str(e)) from e

        raise LLMError("Unexpected end of retry loop")

    async def achat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> str:
        """Send asynchronous chat completion request with retry logic."""
        request = self._request_kwargs(messages, temperature, max_tokens, json_mode)
        retry_delay = INITIAL_RETRY_DELAY

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                response = await self.async_client.chat.completions.create(**request)
                return self._log_response(response, start_time, "LLM async response")

            except RateLimitError as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Rate limit hit, retrying in {retry_delay}s... "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(retry_delay)
                    retry_delay *= BACKOFF_MULTIPLIER
                else:
                    logger.error(f"Rate limit exceeded after {self.max_retries} attempts")
                    raise LLMRateLimitError(str(e)) from e

            except APITimeoutError as e:
                logger.error(f"Async LLM request timed out: {e}")
                raise LLMTimeoutError(str(e)) from e

            except APIError as e:
                logger.error(f"Async LLM request failed: {e}")
                raise LLMError(str(e)) from e

        raise LLMError("Unexpected end of retry loop")
