"""
Integration tests for Dictation Studio components.

These tests verify that components work together correctly and catch
common integration issues like missing methods or incompatible interfaces.
"""

import inspect
from unittest.mock import AsyncMock, MagicMock, patch

import pyperclip
import pytest

from dictation_studio.audio.recorder import AudioRecorder, AudioRecorderError
from dictation_studio.audio.transcriber import LocalTranscriber, RemoteTranscriber, Transcriber, TranscriptionResult
from dictation_studio.config.settings import ConfigurationError, Example, LLMConfig
from dictation_studio.main import DictationApp
from dictation_studio.polish.polisher import Polisher
from dictation_studio.polish.providers import PolishResult, RuleBasedProvider
from dictation_studio.ui.terminal import TerminalUI

SPEECH = b"\x00" * 2048


class TestMethodExistence:
    """Test that all required methods exist on components."""

    def test_audio_recorder_methods(self):
        recorder = AudioRecorder()

        assert inspect.iscoroutinefunction(recorder.start_recording)
        assert inspect.iscoroutinefunction(recorder.stop_recording)
        assert not inspect.iscoroutinefunction(recorder.is_recording)

    def test_transcriber_methods(self):
        for transcriber in (LocalTranscriber(), RemoteTranscriber(LLMConfig())):
            assert inspect.iscoroutinefunction(transcriber.transcribe)
            assert inspect.iscoroutinefunction(transcriber.transcribe_file)
            assert not inspect.iscoroutinefunction(transcriber.is_available)

    def test_polisher_methods(self):
        polisher = Polisher()
        assert inspect.iscoroutinefunction(polisher.polish)

    def test_terminal_ui_methods(self):
        """The methods DictationApp awaits must be coroutines."""
        ui = TerminalUI()

        assert inspect.iscoroutinefunction(ui.prompt_start_recording)
        assert inspect.iscoroutinefunction(ui.show_recording_status)
        assert inspect.iscoroutinefunction(ui.prompt_stop_recording)
        assert inspect.iscoroutinefunction(ui.show_error)
        assert inspect.iscoroutinefunction(ui.show_success)
        assert not inspect.iscoroutinefunction(ui.show_transcripts)
        assert not inspect.iscoroutinefunction(ui.progress)

    def test_dictation_app_methods(self, store):
        app = DictationApp(store=store)

        assert inspect.iscoroutinefunction(app.run_session)
        assert inspect.iscoroutinefunction(app.transcribe)
        assert inspect.iscoroutinefunction(app.polish)
        assert not inspect.iscoroutinefunction(app.set_mode)


class TestDataStructures:
    """Test that data structures are compatible between components."""

    def test_transcription_result_structure(self):
        result = TranscriptionResult(text="test text", language="en")

        assert result.text == "test text"
        assert result.segments == []
        assert result.provider is None

    def test_polish_result_structure(self):
        result = PolishResult(
            original_text="um, hello there",
            polished_text="Hello there.",
            provider="test",
            processing_time=1.0,
        )

        assert result.error is None
        assert result.fallback is False
        assert result.metadata == {}


def make_app(store, transcript="um, hello world, uh, this is a test"):
    """DictationApp wired to mocked recorder, UI, transcriber and polisher."""
    mock_recorder = AsyncMock(spec=AudioRecorder)
    mock_recorder.stop_recording.return_value = SPEECH
    mock_recorder.is_recording.return_value = False

    mock_ui = AsyncMock(spec=TerminalUI)
    mock_ui.console = MagicMock()
    mock_ui.prompt_start_recording.return_value = True
    mock_ui.prompt_stop_recording.return_value = True

    app = DictationApp(store=store, ui=mock_ui, recorder=mock_recorder)
    app.transcription_config.api_key = "sk-test"

    app.transcriber = AsyncMock(spec=Transcriber)
    app.transcriber.transcribe.return_value = TranscriptionResult(text=transcript, provider="openai")

    app.polisher = AsyncMock(spec=Polisher)
    app.polisher.fallback = True
    app.polisher.polish.return_value = PolishResult(
        original_text=transcript,
        polished_text="Hello world, this is a test.",
        provider="openai",
        processing_time=1.0,
        model="gpt-4o",
    )
    return app


@pytest.mark.asyncio
class TestMockedIntegration:
    """Test component integration with mocked interactive parts."""

    async def test_full_pipeline_with_mocks(self, store):
        app = make_app(store)
        app.settings.examples = [Example(input="uh hi", output="Hi.")]

        with patch("pyperclip.copy") as mock_clipboard:
            text = await app.run_session()

        assert text == "Hello world, this is a test."
        app.ui.prompt_start_recording.assert_called_once_with("llm")
        app.recorder.start_recording.assert_called_once()
        app.ui.show_recording_status.assert_called_once()
        app.ui.prompt_stop_recording.assert_called_once()
        app.recorder.stop_recording.assert_called_once()
        app.transcriber.transcribe.assert_called_once_with(SPEECH, audio_format="wav")
        app.polisher.polish.assert_called_once_with(
            "um, hello world, uh, this is a test",
            app.settings.system_prompt,
            [Example(input="uh hi", output="Hi.")],
        )
        app.ui.show_transcripts.assert_called_once_with("um, hello world, uh, this is a test", app.polished)
        app.ui.show_success.assert_called_once_with("Text copied to clipboard")
        app.ui.show_error.assert_not_called()
        mock_clipboard.assert_called_once_with("Hello world, this is a test.")

    async def test_without_polishing_copies_raw_transcript(self, store):
        app = make_app(store, transcript="plain words")

        with patch("pyperclip.copy") as mock_clipboard:
            text = await app.run_session(polish=False)

        assert text == "plain words"
        app.polisher.polish.assert_not_called()
        mock_clipboard.assert_called_once_with("plain words")

    async def test_without_copy(self, store):
        app = make_app(store)

        with patch("pyperclip.copy") as mock_clipboard:
            await app.run_session(copy=False)

        mock_clipboard.assert_not_called()
        app.ui.show_success.assert_not_called()

    async def test_clipboard_failure_keeps_result(self, store):
        app = make_app(store)

        with patch("pyperclip.copy", side_effect=pyperclip.PyperclipException("no clipboard")):
            text = await app.run_session()

        assert text == "Hello world, this is a test."
        app.ui.show_success.assert_not_called()
        app.ui.console.print.assert_called_once()

    async def test_user_declines_to_record(self, store):
        app = make_app(store)
        app.ui.prompt_start_recording.return_value = False

        assert await app.run_session() is None
        app.recorder.start_recording.assert_not_called()

    async def test_error_handling_integration(self, store):
        app = make_app(store)
        app.recorder.start_recording.side_effect = AudioRecorderError("Microphone not found")

        assert await app.run_session() is None

        app.ui.show_error.assert_called_once()
        assert "Microphone not found" in str(app.ui.show_error.call_args.args[0])
        app.transcriber.transcribe.assert_not_called()

    async def test_missing_configuration_stops_before_recording(self, store):
        app = make_app(store)
        app.transcription_config.api_key = ""

        assert await app.run_session() is None

        error = app.ui.show_error.call_args.args[0]
        assert isinstance(error, ConfigurationError)
        assert str(error) == "Please configure your LLM settings first"
        app.recorder.start_recording.assert_not_called()

    async def test_local_mode_needs_no_key(self, store):
        app = make_app(store)
        transcriber = app.transcriber
        app.set_mode("local")
        app.transcriber = transcriber
        app.transcription_config.api_key = ""

        with patch("pyperclip.copy"):
            assert await app.run_session() == "Hello world, this is a test."

        app.ui.prompt_start_recording.assert_called_once_with("local")

    async def test_empty_recording(self, store):
        app = make_app(store)
        app.recorder.stop_recording.return_value = b""

        assert await app.run_session() is None

        assert "No audio was recorded" in str(app.ui.show_error.call_args.args[0])
        app.transcriber.transcribe.assert_not_called()

    async def test_no_speech_detected(self, store):
        app = make_app(store, transcript="   ")

        assert await app.run_session() is None

        assert "No speech detected" in str(app.ui.show_error.call_args.args[0])
        app.polisher.polish.assert_not_called()

    async def test_recorder_stopped_after_failure(self, store):
        app = make_app(store)
        app.ui.prompt_stop_recording.side_effect = RuntimeError("terminal closed")
        app.recorder.is_recording.return_value = True

        await app.run_session()

        app.recorder.stop_recording.assert_called_once()

    async def test_stop_prompt_interrupted_cancels_session(self, store):
        app = make_app(store)
        app.ui.prompt_stop_recording.return_value = False

        assert await app.run_session() is None

        app.recorder.stop_recording.assert_called_once()
        app.transcriber.transcribe.assert_not_called()
        app.ui.show_error.assert_not_called()

    async def test_fallback_polish_reaches_the_user(self, store):
        app = make_app(store)
        app.polisher = Polisher(provider=AsyncMock(**{"polish.return_value": PolishResult(
            original_text="", polished_text="", provider="openai", processing_time=0.1, error="timeout"
        )}))

        with patch("pyperclip.copy") as mock_clipboard:
            text = await app.run_session()

        assert app.polished.fallback is True
        assert text == "Hello world, this is a test."
        mock_clipboard.assert_called_once_with(text)


class TestDictationApp:

    @pytest.mark.asyncio
    async def test_polish_requires_content(self, store):
        app = DictationApp(store=store)
        with pytest.raises(ValueError, match="No content to polish"):
            await app.polish()

    def test_final_text_prefers_polished(self, store):
        app = DictationApp(store=store)
        app.raw_transcript = "raw"
        assert app.final_text() == "raw"

        app.polished = PolishResult(original_text="raw", polished_text="Polished.", provider="x",
                                    processing_time=0.0)
        assert app.final_text() == "Polished."

        app.clear()
        assert app.final_text() == ""

    def test_set_mode_resets_transcriber(self, store):
        app = DictationApp(store=store)
        app.transcription_config.api_key = "sk-test"
        assert isinstance(app.get_transcriber(), RemoteTranscriber)

        app.set_mode("local")
        assert isinstance(app.get_transcriber(), LocalTranscriber)

        with pytest.raises(ValueError):
            app.set_mode("browser")

    def test_keyless_compatible_server_is_ready(self, store):
        store.save_llm_config("transcription", LLMConfig(
            provider="openai-compatible", model="whisper", base_url="http://localhost:8080/v1"
        ))
        app = DictationApp(store=store)

        app.check_ready()

    def test_compatible_server_without_base_url_is_not_ready(self, store):
        app = DictationApp(store=store)
        app.transcription_config = LLMConfig(provider="openai-compatible", model="whisper")

        with pytest.raises(ConfigurationError, match="Please configure your LLM settings first"):
            app.check_ready()

    def test_get_polisher_follows_fallback_choice(self, store):
        app = DictationApp(store=store)

        assert app.get_polisher().fallback is True
        assert app.get_polisher(fallback=False).fallback is False
        polisher = app.get_polisher(fallback=False)
        assert app.get_polisher(fallback=False) is polisher

    def test_settings_loaded_from_store(self, store):
        store.save_llm_config("polishing", LLMConfig("anthropic", "claude-3-haiku-20240307", "sk-ant"))
        app = DictationApp(store=store)

        assert app.polishing_config.provider == "anthropic"
        assert app.mode == "llm"


class TestComponentInitialization:
    """Test that all components can be initialized without errors."""

    def test_all_components_initialize(self, store):
        assert AudioRecorder() is not None
        assert LocalTranscriber() is not None
        assert Polisher() is not None
        assert RuleBasedProvider().is_available()
        assert TerminalUI() is not None
        assert DictationApp(store=store) is not None

    def test_whisper_models_list(self):
        models = LocalTranscriber().get_available_models()

        assert isinstance(models, list)
        assert "large-v3-turbo" in models
        assert "tiny" in models
