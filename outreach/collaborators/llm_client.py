"""Anthropic client shared by the LLM-backed collaborators."""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_FALLBACK_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class LLMResponse:
    text: str
    model_used: str
    total_tokens: int


class LLMClient:
    """Calls Claude with a primary model and one fallback model.

    The underlying SDK client is created lazily and configured with HTTP
    timeouts so a dead socket cannot hang a stage forever.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        fallback_model: str = DEFAULT_FALLBACK_MODEL,
    ):
        self.api_key = api_key
        self.model = model
        self.fallback_model = fallback_model
        self._client = None

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise RuntimeError(
                    "LLM service unavailable. Set ANTHROPIC_API_KEY environment variable."
                )
            import anthropic
            import httpx

            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                timeout=httpx.Timeout(connect=30.0, read=300.0, write=30.0, pool=30.0),
            )
        return self._client

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 4000,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Send one user message and return the text reply.

        Raises:
            RuntimeError: no API key, or both models failed
        """
        client = self._get_client()

        kwargs = {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        for attempt_model in [self.model, self.fallback_model]:
            try:
                response = client.messages.create(model=attempt_model, **kwargs)
                raw_text = response.content[0].text
                total_tokens = response.usage.input_tokens + response.usage.output_tokens
                logger.debug(f"{attempt_model} responded ({total_tokens} tokens)")
                return LLMResponse(raw_text, attempt_model, total_tokens)
            except Exception as e:
                if attempt_model == self.fallback_model:
                    raise RuntimeError(
                        f"Both {self.model} and {self.fallback_model} failed: {e}"
                    ) from e
                logger.warning(
                    f"Model {attempt_model} failed, trying {self.fallback_model}: {e}"
                )

        raise RuntimeError("All model attempts exhausted")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
