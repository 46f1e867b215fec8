"""
OpenAI provider implementation.
"""
import logging
from typing import Optional, Dict
from openai import OpenAI, APIError, APITimeoutError

from pathwise.core.config import AI_TIMEOUT_SECONDS, OPENAI_MODEL
from pathwise.llm.provider import LLMProvider, LLMProviderError, LLMResponse, LLMTimeoutError

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI provider using official OpenAI SDK, with an explicit per-request timeout."""

    def __init__(self, api_key: str, model: str = OPENAI_MODEL, timeout: float = AI_TIMEOUT_SECONDS):
        if not api_key:
            raise ValueError("OPENAI_API_KEY not configured")
        self.model = model
        self.timeout = timeout
        # Retries would stretch the caller's wait past the timeout
        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        logger.info(f"OpenAI provider initialized: model={model}, timeout={timeout}s")

    def chat(
        self,
        messages: list[Dict[str, str]],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens or 2000,
                **kwargs
            )
        except APITimeoutError as e:
            logger.warning(f"OpenAI request timed out after {self.timeout}s")
            raise LLMTimeoutError(str(e)) from e
        except APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise LLMProviderError(str(e)) from e

        usage = response.usage
        return LLMResponse(
            content=response.choices[0].message.content or "",
            tokens_in=usage.prompt_tokens if usage else 0,
            tokens_out=usage.completion_tokens if usage else 0,
            model=self.model,
            metadata={"finish_reason": response.choices[0].finish_reason},
        )
