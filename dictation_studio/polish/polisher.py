"""
Transcript polishing orchestration.

Builds the prompt from the user's settings, sends it to the configured
provider, and falls back to rule-based cleanup when the remote call fails.
"""

from typing import List, Optional
import logging

from ..config.settings import Example, LLMConfig, ProviderConfigurationError
from .prompt import build_polish_prompt
from .providers import (
    PolishError,
    PolishProvider,
    PolishResult,
    RuleBasedProvider,
    create_provider,
)

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: transcript and systemPrompt"


class Polisher:
    """
    Polishes raw transcripts with a text-generation provider.

    Args:
        config: Polishing provider configuration
        fallback: Use rule-based cleanup if the provider fails
        provider: Pre-built provider, mainly for tests; overrides config
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        fallback: bool = True,
        provider: Optional[PolishProvider] = None
    ):
        self.config = config or LLMConfig()
        self.fallback = fallback
        self._provider = provider
        self._fallback_provider = RuleBasedProvider()

    @property
    def provider(self) -> PolishProvider:
        if self._provider is None:
            self._provider = create_provider(self.config)
        return self._provider

    async def polish(
        self,
        transcript: str,
        system_prompt: str,
        examples: Optional[List[Example]] = None
    ) -> PolishResult:
        """
        Polish a transcript.

        Args:
            transcript: Raw transcription text
            system_prompt: Polishing instructions
            examples: Few-shot examples to include in the prompt

        Returns:
            PolishResult from the provider, or a rule-based result marked
            with fallback=True when the provider failed.

        Raises:
            ValueError: If transcript or system prompt is blank.
            PolishError: If the provider failed and fallback is disabled.
        """
        if not transcript or not transcript.strip() or not system_prompt or not system_prompt.strip():
            raise ValueError(MISSING_FIELDS_MESSAGE)

        prompt = build_polish_prompt(transcript, system_prompt, examples)

        try:
            result = await self.provider.polish(prompt, transcript)
        except ProviderConfigurationError as e:
            error = str(e)
        else:
            if not result.error:
                return result
            error = result.error

        logger.warning(f"Polishing failed: {error}")
        if not self.fallback:
            raise PolishError(f"Failed to polish transcript: {error}")

        fallback_result = await self._fallback_provider.polish(prompt, transcript)
        fallback_result.fallback = True
        fallback_result.error = error
        return fallback_result


async def quick_polish(text: str) -> str:
    """
    Clean up text with the rule-based provider only.

    Args:
        text: Text to clean up

    Returns:
        Cleaned text.
    """
    result = await RuleBasedProvider().polish(text, text)
    return result.polished_text
