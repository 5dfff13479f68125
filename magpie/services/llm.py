"""Text-generation client via an OpenAI-compatible API.

The analyzer only needs ``generate(prompt) -> text``; any object with that
coroutine satisfies ``TextGenerator`` and can stand in for the OpenAI backend.

Usage:
    from magpie.services.llm import create_text_generator

    generator = create_text_generator()
    if generator is not None:
        text = await generator.generate("Summarize this page: ...")
"""

import logging
from typing import Protocol

from openai import APIError, APITimeoutError, AsyncOpenAI

from magpie.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ModelError(Exception):
    """Text-generation call failed."""

    pass


class ModelUnavailableError(ModelError):
    """Network, auth, or API error from the text-generation service."""

    pass


class ModelTimeoutError(ModelError):
    """Text-generation call exceeded its timeout."""

    pass


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OpenAITextGenerator:
    """TextGenerator backed by a chat-completions endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        model: str = "gpt-3.5-turbo",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout: float = 30.0,
        json_mode: bool = True,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.json_mode = json_mode
        # No SDK retries: a failed call degrades to heuristics instead
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def generate(self, prompt: str) -> str:
        """Run one chat completion and return the assistant text.

        Raises:
            ModelTimeoutError: If the request timed out.
            ModelUnavailableError: On any other API or connection error.
        """
        kwargs = {}
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                **kwargs,
            )
        except APITimeoutError as e:
            raise ModelTimeoutError(f"Model call timed out: {e}") from e
        except APIError as e:
            raise ModelUnavailableError(f"Model API error: {e}") from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def test_connection(self) -> bool:
        """Send a trivial prompt and check the model answers ``OK``."""
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": 'Reply with "OK"'}],
                max_tokens=10,
                temperature=0,
            )
        except APIError as e:
            logger.warning("Model connection test failed: %s", e)
            return False
        text = response.choices[0].message.content if response.choices else ""
        return (text or "").strip().strip('"').lower() == "ok"


def create_text_generator(settings: Settings | None = None) -> OpenAITextGenerator | None:
    """Build the configured generator, or None when no API key is set."""
    settings = settings or get_settings()
    if not settings.openai_api_key:
        logger.info("No text-generation API key configured; analysis uses heuristics")
        return None
    return OpenAITextGenerator(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url or None,
        model=settings.ai_model,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
        timeout=settings.ai_timeout,
        json_mode=settings.ai_json_mode,
    )
