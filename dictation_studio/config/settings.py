"""
Persistent settings for transcription and polishing.

Holds the provider catalog, prompt presets, and a small JSON-backed store
for the two LLM configurations and the prompt settings.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List, Dict, Any, Union
import json
import logging
import os

import click

logger = logging.getLogger(__name__)

APP_NAME = "dictation-studio"
CONFIG_DIR_ENV = "DICTATION_STUDIO_CONFIG_DIR"

TRANSCRIPTION_CONFIG_FILE = "transcription-config.json"
POLISHING_CONFIG_FILE = "polishing-config.json"
PROMPT_SETTINGS_FILE = "prompt-settings.json"

TRANSCRIPTION_MODES = ("local", "llm")


class ConfigurationError(Exception):
    """Raised when a configuration is incomplete or invalid."""
    pass


class ProviderConfigurationError(ConfigurationError):
    """Raised when a provider is missing a key or endpoint it needs."""
    pass


@dataclass
class ProviderInfo:
    """A selectable provider and its suggested models."""
    value: str
    label: str
    models: List[str] = field(default_factory=list)
    requires_api_key: bool = True
    requires_base_url: bool = False


PROVIDERS: List[ProviderInfo] = [
    ProviderInfo("openai", "OpenAI", ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"]),
    ProviderInfo("anthropic", "Anthropic", ["claude-3-5-sonnet-20241022", "claude-3-haiku-20240307"]),
    ProviderInfo("google", "Google", ["gemini-2.0-flash-exp", "gemini-1.5-pro", "gemini-1.5-flash"]),
    ProviderInfo("mistral", "Mistral", ["mistral-large-latest", "mistral-small-latest", "voxtral-small-latest"]),
    ProviderInfo("azure-openai", "Azure OpenAI"),  # model is the deployment name
    ProviderInfo("openai-compatible", "OpenAI-compatible", requires_api_key=False, requires_base_url=True),
]

# Conventional environment variables consulted when no key is configured
API_KEY_ENV_VARS: Dict[str, List[str]] = {
    "openai": ["OPENAI_API_KEY"],
    "anthropic": ["ANTHROPIC_API_KEY"],
    "google": ["GOOGLE_API_KEY", "GEMINI_API_KEY"],
    "mistral": ["MISTRAL_API_KEY"],
    "azure-openai": ["AZURE_OPENAI_API_KEY"],
    "openai-compatible": ["OPENAI_COMPATIBLE_API_KEY"],
}


@dataclass
class PromptPreset:
    """A named system prompt the user can switch to."""
    name: str
    prompt: str


DEFAULT_PROMPTS: List[PromptPreset] = [
    PromptPreset(
        "Professional Polish",
        "Polish and improve the following transcription. Fix grammar, punctuation, and sentence "
        "structure while maintaining the original meaning and tone. Make it clear and professional:",
    ),
    PromptPreset(
        "Casual Cleanup",
        "Clean up this transcription by fixing obvious errors and improving readability, but keep "
        "the casual, conversational tone:",
    ),
    PromptPreset(
        "Meeting Notes",
        "Convert this transcription into well-structured meeting notes with clear bullet points "
        "and action items:",
    ),
    PromptPreset(
        "Email Draft",
        "Transform this transcription into a professional email format with proper greeting, "
        "body, and closing:",
    ),
]

DEFAULT_SYSTEM_PROMPT = DEFAULT_PROMPTS[0].prompt
DEFAULT_TRANSCRIPTION_PROMPT = (
    "Transcribe this audio recording accurately. "
    "Provide only the transcription without any additional commentary."
)


def _text_field(data: Dict[str, Any], *keys: str) -> Optional[str]:
    """First string value among keys; values of any other type are ignored."""
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            return value
        logger.warning(f"Ignoring non-text value for setting '{key}': {value!r}")
    return None


@dataclass
class LLMConfig:
    """Provider selection for one function (transcription or polishing)."""
    provider: str = "openai"
    model: str = "gpt-4o"
    api_key: str = ""
    base_url: Optional[str] = None
    api_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"provider": self.provider, "model": self.model, "apiKey": self.api_key}
        if self.base_url:
            data["baseURL"] = self.base_url
        if self.api_version:
            data["apiVersion"] = self.api_version
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LLMConfig":
        return cls(
            provider=_text_field(data, "provider") or cls.provider,
            model=_text_field(data, "model") or cls.model,
            api_key=_text_field(data, "apiKey", "api_key") or "",
            base_url=_text_field(data, "baseURL", "base_url") or None,
            api_version=_text_field(data, "apiVersion", "api_version") or None,
        )


@dataclass
class Example:
    """A few-shot pair of raw transcription and desired output."""
    input: str = ""
    output: str = ""

    def is_blank(self) -> bool:
        return not self.input.strip() and not self.output.strip()


@dataclass
class PromptSettings:
    """Prompts, few-shot examples, and the transcription mode."""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    transcription_prompt: str = DEFAULT_TRANSCRIPTION_PROMPT
    examples: List[Example] = field(default_factory=list)
    transcription_mode: str = "llm"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systemPrompt": self.system_prompt,
            "transcriptionPrompt": self.transcription_prompt,
            "examples": [asdict(example) for example in self.examples],
            "transcriptionMode": self.transcription_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptSettings":
        mode = data.get("transcriptionMode", "llm")
        if mode not in TRANSCRIPTION_MODES:
            logger.warning(f"Unknown transcription mode '{mode}', using 'llm'")
            mode = "llm"
        examples = data.get("examples")
        if not isinstance(examples, list):
            if examples is not None:
                logger.warning(f"Ignoring malformed examples setting: {examples!r}")
            examples = []

        return cls(
            system_prompt=_text_field(data, "systemPrompt") or DEFAULT_SYSTEM_PROMPT,
            transcription_prompt=_text_field(data, "transcriptionPrompt") or DEFAULT_TRANSCRIPTION_PROMPT,
            examples=[
                Example(input=_text_field(item, "input") or "", output=_text_field(item, "output") or "")
                for item in examples
                if isinstance(item, dict)
            ],
            transcription_mode=mode,
        )


def get_provider_info(provider: str) -> Optional[ProviderInfo]:
    """Look up a provider in the catalog."""
    for info in PROVIDERS:
        if info.value == provider:
            return info
    return None


def get_models_for_provider(provider: str) -> List[str]:
    """Get suggested models for a provider, or an empty list if unknown."""
    info = get_provider_info(provider)
    return list(info.models) if info else []


def get_preset(name: str) -> PromptPreset:
    """
    Find a prompt preset by name (case-insensitive).

    Raises:
        KeyError: If no preset has that name.
    """
    for preset in DEFAULT_PROMPTS:
        if preset.name.lower() == name.strip().lower():
            return preset
    raise KeyError(name)


def resolve_api_key(config: LLMConfig) -> str:
    """Return the configured API key, or the provider's environment variable."""
    if config.api_key:
        return config.api_key
    for env_var in API_KEY_ENV_VARS.get(config.provider, []):
        value = os.getenv(env_var)
        if value:
            return value
    return ""


def validate_llm_config(config: LLMConfig, purpose: str) -> None:
    """
    Validate a configuration before it is saved or used.

    Args:
        config: Configuration to check
        purpose: 'transcription' or 'polishing', used in the error message

    Raises:
        ConfigurationError: If provider, model, or API key is missing.
    """
    info = get_provider_info(config.provider)
    needs_key = info.requires_api_key if info else True

    if not config.provider or not config.model or (needs_key and not config.api_key):
        raise ConfigurationError(f"Please fill in all {purpose} settings")

    if info and info.requires_base_url and not config.base_url:
        raise ConfigurationError(f"Base URL required for {info.label} {purpose} provider")


def mask_api_key(api_key: str) -> str:
    """Hide all but the last four characters of a key."""
    if not api_key:
        return "(not set)"
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return "*" * 8 + api_key[-4:]


def default_config_dir() -> Path:
    """Directory holding the settings files."""
    configured = os.environ.get(CONFIG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path(click.get_app_dir(APP_NAME))


class ConfigStore:
    """
    JSON-backed storage for the two LLM configurations and prompt settings.

    Each blob lives in its own file so transcription and polishing settings
    can be edited independently. Unreadable files fall back to defaults.
    """

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()

    def _path(self, filename: str) -> Path:
        return self.config_dir / filename

    def _read(self, filename: str) -> Optional[Dict[str, Any]]:
        path = self._path(filename)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable settings file {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed settings file {path}")
            return None
        return data

    def _write(self, filename: str, data: Dict[str, Any]) -> None:
        path = self._path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(path)
        logger.debug(f"Saved settings to {path}")

    def load_transcription_config(self) -> LLMConfig:
        data = self._read(TRANSCRIPTION_CONFIG_FILE)
        return LLMConfig.from_dict(data) if data else LLMConfig()

    def load_polishing_config(self) -> LLMConfig:
        data = self._read(POLISHING_CONFIG_FILE)
        return LLMConfig.from_dict(data) if data else LLMConfig()

    def load_prompt_settings(self) -> PromptSettings:
        data = self._read(PROMPT_SETTINGS_FILE)
        return PromptSettings.from_dict(data) if data else PromptSettings()

    def save_llm_configs(self, transcription: LLMConfig, polishing: LLMConfig) -> None:
        """
        Validate and save both LLM configurations.

        Nothing is written unless both are valid.

        Raises:
            ConfigurationError: If either configuration is incomplete.
        """
        validate_llm_config(transcription, "transcription")
        validate_llm_config(polishing, "polishing")
        self._write(TRANSCRIPTION_CONFIG_FILE, transcription.to_dict())
        self._write(POLISHING_CONFIG_FILE, polishing.to_dict())

    def save_llm_config(self, purpose: str, config: LLMConfig) -> None:
        """
        Validate and save one LLM configuration.

        Args:
            purpose: 'transcription' or 'polishing'

        Raises:
            ConfigurationError: If the configuration is incomplete.
            ValueError: If purpose is unknown.
        """
        filenames = {
            "transcription": TRANSCRIPTION_CONFIG_FILE,
            "polishing": POLISHING_CONFIG_FILE,
        }
        if purpose not in filenames:
            raise ValueError(f"Unknown configuration purpose: {purpose}")
        validate_llm_config(config, purpose)
        self._write(filenames[purpose], config.to_dict())

    def save_prompt_settings(self, settings: PromptSettings) -> None:
        if settings.transcription_mode not in TRANSCRIPTION_MODES:
            raise ConfigurationError(
                f"Transcription mode must be one of {', '.join(TRANSCRIPTION_MODES)}"
            )
        self._write(PROMPT_SETTINGS_FILE, settings.to_dict())
