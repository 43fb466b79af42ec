"""Base LLM client interface for GEPA."""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..errors import LLMTimeoutError

CHARS_PER_TOKEN_ESTIMATE = 4


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients used in GEPA optimization."""

    @abstractmethod
    async def achat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> str:
        """Send asynchronous chat completion request."""
        pass

    @abstractmethod
    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> str:
        """Send synchronous chat completion request."""
        pass

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        json_mode: bool = False,
    ) -> str:
        """Complete a single prompt, raising LLMTimeoutError past the timeout."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        request = self.achat_completion(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )
        if timeout is None:
            return await request
        try:
            return await asyncio.wait_for(request, timeout)
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"LLM request exceeded {timeout}s") from e

    def count_tokens(self, text: str) -> int:
        """Estimate token count using character-based approximation."""
        return len(text) // CHARS_PER_TOKEN_ESTIMATE
