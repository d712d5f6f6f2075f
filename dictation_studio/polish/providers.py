"""
Text-generation provider adapters for polishing transcripts.

Provides a unified interface over the hosted LLM services (OpenAI and the
OpenAI-compatible endpoints, Azure OpenAI, Claude) plus a rule-based
cleanup that works offline and serves as the fallback.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Tuple
from dataclasses import dataclass, field
import asyncio
import logging
import re
import time

from ..config.settings import (
    LLMConfig,
    ProviderConfigurationError,
    resolve_api_key,
)

# Import statements that may fail if dependencies aren't installed
try:
    import openai
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False

try:
    from anthropic import Anthropic
    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False

logger = logging.getLogger(__name__)

GOOGLE_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
MISTRAL_BASE_URL = "https://api.mistral.ai/v1"
DEFAULT_AZURE_API_VERSION = "2024-10-21"
FALLBACK_MODEL = "gpt-4o-mini"


class PolishError(Exception):
    """Raised when a transcript could not be polished."""
    pass


@dataclass
class PolishResult:
    """Result from a polishing request."""
    original_text: str
    polished_text: str
    provider: str
    processing_time: float
    model: Optional[str] = None
    error: Optional[str] = None
    fallback: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class PolishProvider(ABC):
    """Abstract base class for polishing providers."""

    def __init__(self, name: str, model: Optional[str] = None):
        self.name = name
        self.model = model

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the display name of this provider."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider can be called (package installed, credentials set)."""
        pass

    @abstractmethod
    def _generate(self, prompt: str) -> Tuple[str, int]:
        """Send the prompt and return (text, tokens used). Runs in a worker thread."""
        pass

    async def polish(self, prompt: str, transcript: str) -> PolishResult:
        """
        Polish a transcript using the given prompt.

        Never raises for provider failures; the error is reported on the result
        and the polished text is the unchanged transcript.

        Args:
            prompt: Full prompt including instructions, examples, and transcript
            transcript: The raw transcript, kept for reference on the result
        """
        start_time = time.time()

        if not self.is_available():
            return self._error_result(
                transcript, start_time,
                f"{self.get_provider_name()} not available (missing API key or package)"
            )

        try:
            loop = asyncio.get_running_loop()
            text, tokens = await loop.run_in_executor(None, self._generate, prompt)
        except Exception as e:
            logger.error(f"{self.get_provider_name()} polish request failed: {e}")
            return self._error_result(transcript, start_time, str(e))

        return PolishResult(
            original_text=transcript,
            polished_text=text.strip(),
            provider=self.name,
            processing_time=time.time() - start_time,
            model=self.model,
            metadata={"tokens_used": tokens},
        )

    def _error_result(self, transcript: str, start_time: float, error: str) -> PolishResult:
        return PolishResult(
            original_text=transcript,
            polished_text=transcript,
            provider=self.name,
            processing_time=time.time() - start_time,
            model=self.model,
            error=error,
        )


class OpenAIProvider(PolishProvider):
    """
    OpenAI chat completions provider.

    Also drives any endpoint that speaks the OpenAI API when given a base_url
    (Gemini's compatibility endpoint, Mistral, local servers).
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        name: str = "openai",
        timeout: float = 60.0
    ):
        super().__init__(name, model)
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client = None

    def get_provider_name(self) -> str:
        return "OpenAI" if self.name == "openai" else f"OpenAI-compatible ({self.name})"

    def is_available(self) -> bool:
        return OPENAI_AVAILABLE and bool(self.api_key or self.base_url)

    def _create_client(self):
        # Self-hosted compatible servers often accept any key
        return openai.OpenAI(
            api_key=self.api_key or "EMPTY",
            base_url=self.base_url,
            timeout=self.timeout,
        )

    def _generate(self, prompt: str) -> Tuple[str, int]:
        if self._client is None:
            self._client = self._create_client()

        response = self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
        )
        text = response.choices[0].message.content or ""
        tokens = response.usage.total_tokens if response.usage else 0
        return text, tokens


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI provider; the model is the deployment name."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: float = 60.0
    ):
        super().__init__(model=model, api_key=api_key, base_url=base_url,
                         name="azure-openai", timeout=timeout)
        self.api_version = api_version or DEFAULT_AZURE_API_VERSION

    def get_provider_name(self) -> str:
        return "Azure OpenAI"

    def is_available(self) -> bool:
        return OPENAI_AVAILABLE and bool(self.api_key)

    def _create_client(self):
        kwargs = {"api_key": self.api_key, "api_version": self.api_version, "timeout": self.timeout}
        if self.base_url:
            kwargs["azure_endpoint"] = self.base_url
        # Without an endpoint the client reads AZURE_OPENAI_ENDPOINT
        return openai.AzureOpenAI(**kwargs)


class ClaudeProvider(PolishProvider):
    """Anthropic Claude provider."""

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: Optional[str] = None,
        max_tokens: int = 4096,
        timeout: float = 60.0
    ):
        super().__init__("anthropic", model)
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    def get_provider_name(self) -> str:
        return "Claude"

    def is_available(self) -> bool:
        return ANTHROPIC_AVAILABLE and bool(self.api_key)

    def _generate(self, prompt: str) -> Tuple[str, int]:
        if self._client is None:
            self._client = Anthropic(api_key=self.api_key, timeout=self.timeout)

        response = self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")
        usage = getattr(response, "usage", None)
        tokens = usage.input_tokens + usage.output_tokens if usage else 0
        return text, tokens


class RuleBasedProvider(PolishProvider):
    """
    Naive regex cleanup used when no remote provider can be reached.

    Ignores the prompt: removes filler words and stutters, tidies spacing and
    punctuation, and fixes capitalisation.
    """

    # Always noise, with an optional trailing comma
    HESITATIONS = re.compile(r"\b(?:u+m+|u+h+|e+r+m+|e+r+|a+h+|h+m+)\b,?\s*", re.IGNORECASE)
    # Only noise when set off by a comma ("I like it" stays)
    SOFT_FILLERS = re.compile(
        r"\b(?:like|you know|i mean|you see|basically|literally|actually)\b,\s*",
        re.IGNORECASE
    )
    REPEATED_WORDS = re.compile(r"\b(\w+)(?:[\s,]+\1\b)+", re.IGNORECASE)
    SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.!?;:])")
    REPEATED_COMMAS = re.compile(r",(?:\s*,)+")
    COMMA_BEFORE_STOP = re.compile(r",\s*([.!?])")
    LEADING_JUNK = re.compile(r"^[\s,;:]+")
    WHITESPACE = re.compile(r"\s+")
    LONE_I = re.compile(r"\bi\b")
    SENTENCE_START = re.compile(r"(^|[.!?]\s+)([a-z])")

    def __init__(self):
        super().__init__("rule_based", None)

    def get_provider_name(self) -> str:
        return "Rule-Based"

    def is_available(self) -> bool:
        return True

    def _generate(self, prompt: str) -> Tuple[str, int]:
        return self.clean(prompt), 0

    async def polish(self, prompt: str, transcript: str) -> PolishResult:
        start_time = time.time()
        return PolishResult(
            original_text=transcript,
            polished_text=self.clean(transcript),
            provider=self.name,
            processing_time=time.time() - start_time,
            metadata={"method": "rule-based"},
        )

    def clean(self, text: str) -> str:
        """Apply the cleanup rules to text."""
        if not text.strip():
            return text

        cleaned = self.HESITATIONS.sub("", text)
        cleaned = self.SOFT_FILLERS.sub("", cleaned)
        cleaned = self.REPEATED_WORDS.sub(r"\1", cleaned)
        cleaned = self.WHITESPACE.sub(" ", cleaned)
        cleaned = self.SPACE_BEFORE_PUNCT.sub(r"\1", cleaned)
        cleaned = self.REPEATED_COMMAS.sub(",", cleaned)
        cleaned = self.COMMA_BEFORE_STOP.sub(r"\1", cleaned)
        cleaned = self.LEADING_JUNK.sub("", cleaned).strip()

        if not cleaned:
            return text.strip()

        cleaned = self.LONE_I.sub("I", cleaned)
        cleaned = self.SENTENCE_START.sub(lambda m: m.group(1) + m.group(2).upper(), cleaned)

        if cleaned[-1] not in ".!?":
            cleaned = cleaned.rstrip(",;:") + "."

        return cleaned


def create_provider(config: LLMConfig, timeout: float = 60.0) -> PolishProvider:
    """
    Select the polishing adapter for a configuration.

    Unknown providers fall back to OpenAI with gpt-4o-mini.

    Raises:
        ProviderConfigurationError: If the provider needs a key or base URL
            that is not configured.
    """
    provider = config.provider
    api_key = resolve_api_key(config)
    model = config.model

    if provider == "openai":
        return OpenAIProvider(model=model, api_key=api_key or None, timeout=timeout)

    if provider == "azure-openai":
        if not api_key:
            raise ProviderConfigurationError("API key required for Azure OpenAI")
        return AzureOpenAIProvider(
            model=model,
            api_key=api_key,
            base_url=config.base_url,
            api_version=config.api_version,
            timeout=timeout,
        )

    if provider == "anthropic":
        if not api_key:
            raise ProviderConfigurationError("API key required for Anthropic")
        return ClaudeProvider(model=model, api_key=api_key, timeout=timeout)

    if provider == "google":
        if not api_key:
            raise ProviderConfigurationError("API key required for Google")
        return OpenAIProvider(model=model, api_key=api_key, base_url=GOOGLE_OPENAI_BASE_URL,
                              name="google", timeout=timeout)

    if provider == "mistral":
        if not api_key:
            raise ProviderConfigurationError("API key required for Mistral")
        return OpenAIProvider(model=model, api_key=api_key, base_url=MISTRAL_BASE_URL,
                              name="mistral", timeout=timeout)

    if provider == "openai-compatible":
        if not config.base_url:
            raise ProviderConfigurationError("Base URL required for OpenAI-compatible provider")
        return OpenAIProvider(model=model, api_key=api_key or None, base_url=config.base_url,
                              name="openai-compatible", timeout=timeout)

    logger.warning(f"Unknown provider '{provider}', falling back to OpenAI {FALLBACK_MODEL}")
    return OpenAIProvider(
        model=FALLBACK_MODEL,
        api_key=api_key or resolve_api_key(LLMConfig(provider="openai")) or None,
        timeout=timeout,
    )
