"""
LLM Provider abstraction for multi-provider support.

This module provides a unified interface for the text-generation collaborator
(OpenAI, Gemini). Provider errors are mapped onto GenerationServiceError and
TransientGenerationError, and generate_with_retry runs a bounded retry loop
that reports a GenerationOutcome instead of raising.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
import logging
import time
from dataclasses import dataclass, field

from sales_insights.core.exceptions import GenerationServiceError, TransientGenerationError

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM provider."""
    content: str
    tokens_used: int = 0
    model: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationOutcome:
    """
    Result of a generation with retries.

    Attributes:
        succeeded: True when a response was produced
        response: The response, when succeeded
        attempts: Number of calls made
        error: Last error message, when not succeeded
        rate_limited: True when the last failure was a rate limit
    """
    succeeded: bool
    response: Optional[LLMResponse] = None
    attempts: int = 0
    error: Optional[str] = None
    rate_limited: bool = False


class LLMProvider(ABC):
    """Base interface for LLM providers."""

    def __init__(
        self,
        model: str,
        api_key: str,
        max_retries: int = 2,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize LLM provider.

        Args:
            model: Model identifier (e.g., "gpt-4o-mini", "gemini-1.5-flash")
            api_key: API key for authentication
            max_retries: Retries after the first attempt
            retry_delay: Delay before the first retry; doubles on each retry
            sleep: Sleep function, replaceable in tests
        """
        self.model = model
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.sleep = sleep

    @abstractmethod
    def generate(self, system_prompt: str, messages: List[Dict[str, str]],
                 temperature: float = 0.7, max_tokens: Optional[int] = None) -> LLMResponse:
        """
        Generate response from LLM.

        Args:
            system_prompt: Instructions for the model
            messages: Conversation as {"role", "content"} dicts, oldest first
            temperature: Sampling temperature (0.0 to 1.0)
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse object

        Raises:
            TransientGenerationError: Rate limit, timeout, connection or server error
            GenerationServiceError: Any other provider failure
        """
        pass

    def generate_with_retry(self, system_prompt: str, messages: List[Dict[str, str]],
                            temperature: float = 0.7,
                            max_tokens: Optional[int] = None) -> GenerationOutcome:
        """
        Generate response with exponential backoff retry.

        Transient failures are retried up to max_retries times, waiting
        retry_delay, then twice that, and so on. Any other failure ends the
        loop at once.

        Args:
            system_prompt: Instructions for the model
            messages: Conversation as {"role", "content"} dicts
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            GenerationOutcome; never raises for provider failures
        """
        attempts_allowed = self.max_retries + 1
        last_error: Optional[GenerationServiceError] = None

        for attempt in range(attempts_allowed):
            try:
                logger.info(f"LLM generation attempt {attempt + 1}/{attempts_allowed}")
                response = self.generate(system_prompt, messages, temperature, max_tokens)
                return GenerationOutcome(succeeded=True, response=response, attempts=attempt + 1)
            except TransientGenerationError as e:
                last_error = e
                logger.warning(f"LLM generation failed (attempt {attempt + 1}): {str(e)}")
                if attempt < attempts_allowed - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.info(f"Retrying in {wait_time} seconds...")
                    self.sleep(wait_time)
            except GenerationServiceError as e:
                logger.error(f"LLM generation failed with non-retryable error: {str(e)}")
                return GenerationOutcome(
                    succeeded=False, attempts=attempt + 1, error=str(e), rate_limited=False
                )

        logger.error(f"All {attempts_allowed} generation attempts failed")
        return GenerationOutcome(
            succeeded=False,
            attempts=attempts_allowed,
            error=str(last_error) if last_error else None,
            rate_limited=bool(getattr(last_error, "rate_limited", False)),
        )


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    def __init__(self, model: str = "gemini-1.5-flash", api_key: str = None, **kwargs):
        """
        Initialize Gemini provider.

        Args:
            model: Gemini model name
            api_key: Google API key
            **kwargs: Retry settings passed to LLMProvider
        """
        super().__init__(model, api_key, **kwargs)

        try:
            import google.generativeai as genai
            self.genai = genai
            self.genai.configure(api_key=api_key)
            logger.info(f"Initialized Gemini provider with model: {model}")
        except ImportError:
            raise ImportError("google-generativeai package not installed. "
                              "Install with: pip install google-generativeai")

    def generate(self, system_prompt: str, messages: List[Dict[str, str]],
                 temperature: float = 0.7, max_tokens: Optional[int] = None) -> LLMResponse:
        """Generate response using Gemini API."""
        from google.api_core import exceptions as google_exceptions

        generation_config = {
            "temperature": temperature,
        }
        if max_tokens:
            generation_config["max_output_tokens"] = max_tokens

        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
            for m in messages
        ]

        try:
            client = self.genai.GenerativeModel(self.model, system_instruction=system_prompt)
            response = client.generate_content(contents, generation_config=generation_config)
            content = response.text
        except google_exceptions.ResourceExhausted as e:
            raise TransientGenerationError(f"Gemini rate limit: {e}", rate_limited=True) from e
        except (google_exceptions.DeadlineExceeded, google_exceptions.ServiceUnavailable,
                google_exceptions.InternalServerError) as e:
            raise TransientGenerationError(f"Gemini temporarily unavailable: {e}") from e
        except google_exceptions.GoogleAPIError as e:
            raise GenerationServiceError(f"Gemini request failed: {e}") from e
        except ValueError as e:
            # response.text raises when the candidate was blocked
            raise GenerationServiceError(f"Gemini returned no text: {e}") from e

        tokens_used = 0
        if getattr(response, "usage_metadata", None):
            tokens_used = (response.usage_metadata.prompt_token_count +
                           response.usage_metadata.candidates_token_count)

        return LLMResponse(
            content=content,
            tokens_used=tokens_used,
            model=self.model,
            metadata={"finish_reason": response.candidates[0].finish_reason.name if response.candidates else None}
        )


class OpenAIProvider(LLMProvider):
    """OpenAI API provider."""

    def __init__(self, model: str = "gpt-4o-mini", api_key: str = None, **kwargs):
        """
        Initialize OpenAI provider.

        Args:
            model: OpenAI model name
            api_key: OpenAI API key
            **kwargs: Retry settings passed to LLMProvider
        """
        super().__init__(model, api_key, **kwargs)

        try:
            import openai
            self.openai = openai
            # Retries are handled by generate_with_retry
            self.client = openai.OpenAI(api_key=api_key, max_retries=0)
            logger.info(f"Initialized OpenAI provider with model: {model}")
        except ImportError:
            raise ImportError("openai package not installed. "
                              "Install with: pip install openai")

    def generate(self, system_prompt: str, messages: List[Dict[str, str]],
                 temperature: float = 0.7, max_tokens: Optional[int] = None) -> LLMResponse:
        """Generate response using OpenAI API."""
        kwargs = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}] + list(messages),
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = self.client.chat.completions.create(**kwargs)
        except self.openai.RateLimitError as e:
            raise TransientGenerationError(f"OpenAI rate limit: {e}", rate_limited=True) from e
        except (self.openai.APIConnectionError, self.openai.InternalServerError) as e:
            raise TransientGenerationError(f"OpenAI temporarily unavailable: {e}") from e
        except self.openai.OpenAIError as e:
            raise GenerationServiceError(f"OpenAI request failed: {e}") from e

        content = response.choices[0].message.content
        if not content:
            raise GenerationServiceError("OpenAI returned an empty response")

        return LLMResponse(
            content=content,
            tokens_used=response.usage.total_tokens if response.usage else 0,
            model=self.model,
            metadata={
                "finish_reason": response.choices[0].finish_reason,
            }
        )


class LLMProviderFactory:
    """Factory for creating LLM providers."""

    @staticmethod
    def create_provider(provider_type: str, model: str = None,
                        api_key: str = None, **kwargs) -> LLMProvider:
        """
        Create LLM provider instance.

        Args:
            provider_type: "gemini" or "openai"
            model: Model name (uses default if None)
            api_key: API key (required)
            **kwargs: Retry settings (max_retries, retry_delay, sleep)

        Returns:
            LLMProvider instance

        Raises:
            ValueError: If provider_type is invalid
        """
        if not api_key:
            raise ValueError("API key is required")

        provider_type = provider_type.lower()

        if provider_type == "gemini":
            return GeminiProvider(model=model or "gemini-1.5-flash", api_key=api_key, **kwargs)
        elif provider_type == "openai":
            return OpenAIProvider(model=model or "gpt-4o-mini", api_key=api_key, **kwargs)
        else:
            raise ValueError(f"Unknown provider type: {provider_type}. "
                             f"Supported: 'gemini', 'openai'")
