"""Tests for settings persistence and validation."""

import json

import pytest

from dictation_studio.config.settings import (
    DEFAULT_PROMPTS,
    DEFAULT_SYSTEM_PROMPT,
    POLISHING_CONFIG_FILE,
    PROMPT_SETTINGS_FILE,
    TRANSCRIPTION_CONFIG_FILE,
    ConfigStore,
    ConfigurationError,
    Example,
    LLMConfig,
    PromptSettings,
    default_config_dir,
    get_models_for_provider,
    get_preset,
    mask_api_key,
    resolve_api_key,
    validate_llm_config,
)


class TestValidation:

    def test_complete_config_is_valid(self):
        validate_llm_config(LLMConfig("openai", "gpt-4o", "sk-test"), "transcription")

    @pytest.mark.parametrize("config", [
        LLMConfig("", "gpt-4o", "sk-test"),
        LLMConfig("openai", "", "sk-test"),
        LLMConfig("openai", "gpt-4o", ""),
    ])
    def test_missing_field(self, config):
        with pytest.raises(ConfigurationError, match="Please fill in all polishing settings"):
            validate_llm_config(config, "polishing")

    def test_openai_compatible_needs_base_url_not_key(self):
        validate_llm_config(
            LLMConfig("openai-compatible", "llama3", "", base_url="http://localhost:11434/v1"),
            "polishing",
        )
        with pytest.raises(ConfigurationError, match="Base URL required"):
            validate_llm_config(LLMConfig("openai-compatible", "llama3", ""), "polishing")


class TestCatalog:

    def test_models_for_known_provider(self):
        assert get_models_for_provider("openai") == ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"]
        assert "claude-3-haiku-20240307" in get_models_for_provider("anthropic")

    def test_models_for_unknown_provider(self):
        assert get_models_for_provider("nope") == []

    def test_get_preset_is_case_insensitive(self):
        assert get_preset("meeting notes") is DEFAULT_PROMPTS[2]

    def test_get_preset_unknown(self):
        with pytest.raises(KeyError):
            get_preset("Poetry")

    def test_default_prompt_is_professional_polish(self):
        assert DEFAULT_SYSTEM_PROMPT == DEFAULT_PROMPTS[0].prompt
        assert DEFAULT_PROMPTS[0].name == "Professional Polish"


class TestApiKeys:

    def test_configured_key_wins(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert resolve_api_key(LLMConfig("openai", "gpt-4o", "sk-config")) == "sk-config"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gm-env")
        assert resolve_api_key(LLMConfig("google", "gemini-1.5-pro", "")) == "gm-env"

    def test_no_key_anywhere(self):
        assert resolve_api_key(LLMConfig("mistral", "mistral-small-latest", "")) == ""

    def test_mask(self):
        assert mask_api_key("") == "(not set)"
        assert mask_api_key("short") == "*****"
        assert mask_api_key("sk-1234567890abcd") == "********abcd"


class TestConfigStore:

    def test_defaults_when_nothing_saved(self, store):
        assert store.load_transcription_config() == LLMConfig()
        assert store.load_polishing_config() == LLMConfig(provider="openai", model="gpt-4o", api_key="")
        settings = store.load_prompt_settings()
        assert settings.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert settings.transcription_mode == "llm"
        assert settings.examples == []

    def test_save_and_load_llm_configs(self, store):
        transcription = LLMConfig("openai", "gpt-4o", "sk-t")
        polishing = LLMConfig("azure-openai", "my-deployment", "az-key",
                              base_url="https://res.openai.azure.com", api_version="2024-06-01")

        store.save_llm_configs(transcription, polishing)

        assert store.load_transcription_config() == transcription
        assert store.load_polishing_config() == polishing

        saved = json.loads((store.config_dir / POLISHING_CONFIG_FILE).read_text())
        assert saved == {
            "provider": "azure-openai",
            "model": "my-deployment",
            "apiKey": "az-key",
            "baseURL": "https://res.openai.azure.com",
            "apiVersion": "2024-06-01",
        }

    def test_save_llm_configs_writes_nothing_when_one_is_invalid(self, store):
        with pytest.raises(ConfigurationError, match="polishing"):
            store.save_llm_configs(LLMConfig("openai", "gpt-4o", "sk-t"), LLMConfig("openai", "gpt-4o", ""))

        assert not (store.config_dir / TRANSCRIPTION_CONFIG_FILE).exists()

    def test_save_single_config(self, store):
        store.save_llm_config("transcription", LLMConfig("google", "gemini-1.5-flash", "g-key"))
        assert store.load_transcription_config().provider == "google"
        assert not (store.config_dir / POLISHING_CONFIG_FILE).exists()

    def test_save_single_config_unknown_purpose(self, store):
        with pytest.raises(ValueError):
            store.save_llm_config("summarising", LLMConfig("openai", "gpt-4o", "k"))

    def test_prompt_settings_round_trip(self, store):
        settings = PromptSettings(
            system_prompt="Be brief:",
            transcription_prompt="Transcribe.",
            examples=[Example(input="um hi", output="Hi.")],
            transcription_mode="local",
        )
        store.save_prompt_settings(settings)
        assert store.load_prompt_settings() == settings

    def test_invalid_mode_is_rejected(self, store):
        with pytest.raises(ConfigurationError):
            store.save_prompt_settings(PromptSettings(transcription_mode="browser"))

    def test_corrupt_file_falls_back_to_defaults(self, store):
        store.config_dir.mkdir(parents=True)
        (store.config_dir / TRANSCRIPTION_CONFIG_FILE).write_text("{not json")
        (store.config_dir / PROMPT_SETTINGS_FILE).write_text("[1, 2, 3]")

        assert store.load_transcription_config() == LLMConfig()
        assert store.load_prompt_settings() == PromptSettings()

    def test_unknown_mode_in_file_becomes_llm(self, store):
        store.config_dir.mkdir(parents=True)
        (store.config_dir / PROMPT_SETTINGS_FILE).write_text(json.dumps({"transcriptionMode": "browser"}))
        assert store.load_prompt_settings().transcription_mode == "llm"

    @pytest.mark.parametrize("blob", [
        {"examples": None},
        {"examples": "um hi -> Hi."},
        {"systemPrompt": 5, "transcriptionPrompt": ["a"]},
        {"transcriptionMode": ["llm"]},
    ])
    def test_wrongly_typed_prompt_fields_use_defaults(self, store, blob):
        store.config_dir.mkdir(parents=True)
        (store.config_dir / PROMPT_SETTINGS_FILE).write_text(json.dumps(blob))

        assert store.load_prompt_settings() == PromptSettings()

    def test_wrongly_typed_examples_are_skipped_or_blanked(self, store):
        store.config_dir.mkdir(parents=True)
        (store.config_dir / PROMPT_SETTINGS_FILE).write_text(json.dumps({
            "examples": [{"input": "uh hi", "output": "Hi."}, "junk", {"input": 3, "output": "Three."}],
        }))

        assert store.load_prompt_settings().examples == [
            Example(input="uh hi", output="Hi."),
            Example(input="", output="Three."),
        ]

    def test_wrongly_typed_llm_fields_use_defaults(self, store):
        store.config_dir.mkdir(parents=True)
        (store.config_dir / TRANSCRIPTION_CONFIG_FILE).write_text(json.dumps({
            "provider": 7, "model": None, "apiKey": {"k": "v"}, "baseURL": ["x"],
        }))

        assert store.load_transcription_config() == LLMConfig()

    def test_default_dir_follows_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DICTATION_STUDIO_CONFIG_DIR", str(tmp_path / "custom"))
        assert default_config_dir() == tmp_path / "custom"
        assert ConfigStore().config_dir == tmp_path / "custom"
