"""LLM gateway: primary/fallback generation and embeddings.

Gemini (primary) handles complete() and always embed().
Groq (secondary) handles complete() when Gemini fails and a Groq key
is configured. When every backend fails, complete() returns a fixed
apology instead of raising, so a broken backend never fails a turn.
"""

from typing import Callable, Protocol

import structlog

from app.core.config import settings
from app.services.llm.base import LLMProvider
from app.services.llm.gemini import GeminiProvider
from app.services.llm.groq import GroqProvider
from app.services.settings import GEMINI_API_KEY, GROQ_API_KEY

logger = structlog.get_logger(__name__)

APOLOGY_TEXT = (
    "Desculpe, estou com dificuldades para processar sua pergunta agora. "
    "Pode tentar novamente?"
)
EMPTY_FALLBACK_TEXT = "Desculpe, não consegui gerar uma resposta."

ProviderFactory = Callable[[str], LLMProvider]


class CredentialSource(Protocol):
    async def get(self, key: str) -> str: ...


def _default_gemini(api_key: str) -> LLMProvider:
    return GeminiProvider(
        api_key,
        model=settings.gemini_model,
        embedding_model=settings.gemini_embedding_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )


def _default_groq(api_key: str) -> LLMProvider:
    return GroqProvider(
        api_key,
        model=settings.groq_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )


class LLMGateway:
    """Builds providers from the current credentials and applies fallback policy.

    Providers are cached per (backend, key); rotating a key builds a new
    client on the next call.
    """

    def __init__(
        self,
        credentials: CredentialSource,
        gemini_factory: ProviderFactory = _default_gemini,
        groq_factory: ProviderFactory = _default_groq,
    ) -> None:
        self._credentials = credentials
        self._factories: dict[str, ProviderFactory] = {
            GEMINI_API_KEY: gemini_factory,
            GROQ_API_KEY: groq_factory,
        }
        self._cache: dict[tuple[str, str], LLMProvider] = {}

    async def _provider(self, key_name: str) -> LLMProvider | None:
        api_key = await self._credentials.get(key_name)
        if not api_key:
            return None
        cache_key = (key_name, api_key)
        provider = self._cache.get(cache_key)
        if provider is None:
            # Drop clients built for a previous key of the same backend.
            for stale in [k for k in self._cache if k[0] == key_name]:
                del self._cache[stale]
            provider = self._factories[key_name](api_key)
            self._cache[cache_key] = provider
        return provider

    async def has_embedding_capability(self) -> bool:
        return bool(await self._credentials.get(GEMINI_API_KEY))

    async def complete(self, prompt: str, system_prompt: str = "") -> str:
        """Generate text for ``prompt``. Never raises."""
        try:
            primary = await self._provider(GEMINI_API_KEY)
            if primary is None:
                logger.warning("gemini_not_configured")
            else:
                response = await primary.generate(prompt, system_prompt)
                if response.text:
                    return response.text
                logger.warning("gemini_empty_completion", prompt_len=len(prompt))
        except Exception as primary_err:
            logger.warning(
                "primary_generate_failed_falling_back",
                primary="gemini",
                error=str(primary_err),
            )

        try:
            secondary = await self._provider(GROQ_API_KEY)
            if secondary is not None:
                response = await secondary.generate(prompt, system_prompt)
                logger.info("completion_served_by_fallback", backend="groq")
                return response.text or EMPTY_FALLBACK_TEXT
        except Exception as secondary_err:
            logger.error("fallback_generate_failed", backend="groq", error=str(secondary_err))

        return APOLOGY_TEXT

    async def embed(self, text: str) -> list[float]:
        """Embed ``text`` with Gemini.

        Returns [] when no Gemini key is configured (capability absent).
        Raises RuntimeError on a backend failure.
        """
        provider = await self._provider(GEMINI_API_KEY)
        if provider is None:
            logger.warning("embedding_skipped_no_key")
            return []
        return await provider.embed(text)
