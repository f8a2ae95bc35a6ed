"""Groq LLM provider implementation.

Uses the OpenAI SDK against Groq's OpenAI-compatible API.
Generation only; Groq offers no embedding endpoint.
"""

import asyncio

import structlog
from openai import AsyncOpenAI

from app.services.llm.base import LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)

_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqProvider(LLMProvider):
    """Groq-hosted Llama via OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=_GROQ_BASE_URL)
        self._model = model
        self._timeout = timeout_seconds
        logger.info("groq_provider_initialized", model=model)

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Generate a complete response using Groq."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                timeout=self._timeout,
            )
            text = ""
            if response.choices:
                text = response.choices[0].message.content or ""
            usage = response.usage
            result = LLMResponse(
                text=text,
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            )
            logger.debug(
                "groq_generate_ok",
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                prompt_len=len(prompt),
            )
            return result
        except asyncio.TimeoutError as e:
            logger.error("groq_generate_timeout", prompt_len=len(prompt))
            raise RuntimeError("Groq generate timed out") from e
        except Exception as e:
            logger.error(
                "groq_generate_failed",
                error=str(e),
                model=self._model,
                prompt_len=len(prompt),
            )
            raise RuntimeError(f"Groq generate failed: {e}") from e

    async def embed(self, text: str) -> list[float]:
        """Groq does not support embeddings. LLMGateway always embeds via Gemini."""
        raise NotImplementedError("Groq does not support embeddings. Use Gemini for embed().")
