"""Google Gemini LLM provider implementation.

Uses google-generativeai SDK for both generation and embeddings.
Built on demand by LLMGateway whenever a Gemini key is configured.
All external calls have a bounded timeout and structured error logging.
"""

import asyncio

import google.generativeai as genai
import structlog

from app.services.llm.base import LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)


class GeminiProvider(LLMProvider):
    """Gemini Flash implementation of LLMProvider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        embedding_model: str = "models/text-embedding-004",
        timeout_seconds: float = 10.0,
    ) -> None:
        genai.configure(api_key=api_key)
        self._model_name = model
        self._embedding_model = embedding_model
        self._timeout = timeout_seconds
        logger.info("gemini_provider_initialized", model=model, embedding_model=embedding_model)

    def _build_model(self, system_prompt: str) -> genai.GenerativeModel:
        """Build a GenerativeModel with the given system instruction."""
        return genai.GenerativeModel(
            model_name=self._model_name,
            system_instruction=system_prompt or None,
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Generate a complete response using Gemini Flash."""
        model = self._build_model(system_prompt)
        generation_config = genai.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=temperature,
        )
        try:
            response = await model.generate_content_async(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": self._timeout},
            )
            # response.text raises when Gemini returns no valid Part (safety block, empty candidates).
            try:
                text = response.text
            except (ValueError, AttributeError):
                text = ""
                if response.candidates:
                    try:
                        for part in response.candidates[0].content.parts:
                            if getattr(part, "text", None):
                                text += part.text
                    except (IndexError, AttributeError):
                        pass
                if not text:
                    logger.warning(
                        "gemini_empty_response",
                        prompt_len=len(prompt),
                        candidates=len(response.candidates) if response.candidates else 0,
                    )
            usage = response.usage_metadata
            result = LLMResponse(
                text=text,
                input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
                output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
            )
            logger.debug(
                "gemini_generate_ok",
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                prompt_len=len(prompt),
            )
            return result
        except Exception as e:
            logger.error(
                "gemini_generate_failed",
                error=str(e),
                model=self._model_name,
                prompt_len=len(prompt),
            )
            raise RuntimeError(f"Gemini generate failed: {e}") from e

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding with the configured Gemini embedding model.

        The genai.embed_content SDK call is synchronous, so it runs in a
        thread to keep the event loop free, bounded by asyncio.wait_for.
        """
        try:
            result: dict = await asyncio.wait_for(
                asyncio.to_thread(
                    genai.embed_content,
                    model=self._embedding_model,
                    content=text,
                ),
                timeout=self._timeout,
            )
            embedding: list[float] = list(result["embedding"])
            logger.debug("gemini_embed_ok", text_len=len(text), vector_dim=len(embedding))
            return embedding
        except asyncio.TimeoutError as e:
            logger.error("gemini_embed_timeout", text_len=len(text), timeout_seconds=self._timeout)
            raise RuntimeError(f"Gemini embed timed out after {self._timeout}s") from e
        except Exception as e:
            logger.error("gemini_embed_failed", error=str(e), text_len=len(text))
            raise RuntimeError(f"Gemini embed failed: {e}") from e
