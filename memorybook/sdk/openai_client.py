"""
Story text generation through the OpenAI chat completions API.

Failures are loud: any transport or provider problem becomes a
``ProviderError`` and nothing is retried.
"""

from typing import Any, Optional

from openai import OpenAI, OpenAIError

from ..config.loader import GeneratorConfig
from ..core.errors import ProviderError
from ..utils.logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_TEMPLATE = (
    "Sample content for {child_name}. "
    "Add OPENAI_API_KEY in environment to enable real generation."
)


def placeholder_content(child_name: str) -> str:
    """Fixed text returned when no model credential is configured."""
    return PLACEHOLDER_TEMPLATE.format(child_name=child_name)


class ContentGenerator:
    """Generates story text from a prompt.

    Without an API key the generator runs in a degraded mode that returns
    a labeled placeholder and never creates a network client.
    """

    def __init__(self, config: Optional[GeneratorConfig] = None):
        """Initialize the generator.

        Args:
            config: Model, token limit, timeout and credential settings
        """
        self.config = config or GeneratorConfig()
        self.model = self.config.model
        self.max_tokens = self.config.max_tokens
        self._client: Optional[OpenAI] = None

    @property
    def enabled(self) -> bool:
        """True when a provider credential is configured."""
        return bool(self.config.api_key)

    @property
    def client(self) -> OpenAI:
        """Lazily built SDK client; SDK-level retries are disabled."""
        if self._client is None:
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                max_retries=0,
            )
        return self._client

    def generate(self, prompt: str, child_name: str = "Your child") -> str:
        """Complete a prompt into story text.

        Args:
            prompt: Prompt built from the child's memories
            child_name: Used only by the placeholder text

        Returns:
            Generated story text

        Raises:
            ProviderError: On any transport error, provider error, or
                malformed response
        """
        if not self.enabled:
            logger.info("No OPENAI_API_KEY configured, returning placeholder content")
            return placeholder_content(child_name)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            details = _error_details(e)
            logger.error("AI error: %s", details)
            raise ProviderError(f"Chat completion failed: {e}", details=details) from e

        return _first_completion_text(response)


def _first_completion_text(response: Any) -> str:
    """Extract the first choice's text or raise ``ProviderError``."""
    choices = getattr(response, "choices", None)
    if not choices:
        logger.error("AI error: response contained no choices")
        raise ProviderError("Chat completion returned no choices",
                            details="response contained no choices")

    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        logger.error("AI error: first choice has no text content")
        raise ProviderError("Chat completion returned no text",
                            details="first choice has no text content")
    return content


def _error_details(error: OpenAIError) -> Any:
    """Upstream response body when the SDK exposes one, else the message."""
    body = getattr(error, "body", None)
    if body is not None:
        return body
    return str(error)
