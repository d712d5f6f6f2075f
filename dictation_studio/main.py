"""
Main application entry point for Dictation Studio.

This module provides the command-line interface and orchestrates the
recording, transcription, and polishing pipeline.
"""

import asyncio
import logging
import sys
from typing import Optional

import click
import pyperclip
from rich.logging import RichHandler

from . import __version__
from .audio.recorder import AudioRecorder, AudioRecorderError, get_available_devices, has_speech_audio
from .audio.transcriber import (
    LocalTranscriber,
    Transcriber,
    TranscriptionError,
    TranscriptionResult,
    create_transcriber,
)
from .config.settings import (
    DEFAULT_PROMPTS,
    DEFAULT_SYSTEM_PROMPT,
    PROVIDERS,
    TRANSCRIPTION_MODES,
    ConfigStore,
    ConfigurationError,
    LLMConfig,
    get_models_for_provider,
    get_provider_info,
    get_preset,
    resolve_api_key,
)
from .polish.polisher import Polisher
from .polish.prompt import add_example, remove_example, update_example
from .polish.providers import PolishError, PolishResult
from .ui.terminal import TerminalUI

logger = logging.getLogger(__name__)


class DictationApp:
    """
    Coordinates one dictation session.

    Owns the recorder, the settings, and the current raw and polished
    transcripts. Transcriber and polisher are built from the settings on
    first use and can be replaced for testing.
    """

    def __init__(
        self,
        store: Optional[ConfigStore] = None,
        ui: Optional[TerminalUI] = None,
        recorder: Optional[AudioRecorder] = None
    ):
        self.store = store or ConfigStore()
        self.ui = ui or TerminalUI()
        self.recorder = recorder or AudioRecorder()

        self.transcription_config = self.store.load_transcription_config()
        self.polishing_config = self.store.load_polishing_config()
        self.settings = self.store.load_prompt_settings()
        self.model_size = "base"

        self.transcriber: Optional[Transcriber] = None
        self.polisher: Optional[Polisher] = None

        # Session state
        self.raw_transcript = ""
        self.polished: Optional[PolishResult] = None

    @property
    def mode(self) -> str:
        return self.settings.transcription_mode

    def set_mode(self, mode: str) -> None:
        """Switch between 'local' and 'llm' transcription for this session."""
        if mode not in TRANSCRIPTION_MODES:
            raise ValueError(f"Unknown transcription mode: {mode}")
        if mode != self.settings.transcription_mode:
            self.settings.transcription_mode = mode
            self.transcriber = None

    def get_transcriber(self) -> Transcriber:
        if self.transcriber is None:
            self.transcriber = create_transcriber(
                self.mode,
                config=self.transcription_config,
                prompt=self.settings.transcription_prompt,
                model_size=self.model_size,
            )
        return self.transcriber

    def get_polisher(self, fallback: bool = True) -> Polisher:
        if self.polisher is None or self.polisher.fallback != fallback:
            self.polisher = Polisher(self.polishing_config, fallback=fallback)
        return self.polisher

    def check_ready(self) -> None:
        """
        Make sure recording can produce a transcription.

        Raises:
            ConfigurationError: If LLM mode lacks the API key or base URL
                its provider needs.
        """
        if self.mode != "llm":
            return

        config = self.transcription_config
        info = get_provider_info(config.provider)
        needs_key = info.requires_api_key if info else True
        needs_base_url = info.requires_base_url if info else False
        if (needs_key and not resolve_api_key(config)) or (needs_base_url and not config.base_url):
            raise ConfigurationError("Please configure your LLM settings first")

    async def transcribe(self, audio_data: bytes, audio_format: str = "wav") -> TranscriptionResult:
        """Transcribe audio and store the text as the raw transcript."""
        result = await self.get_transcriber().transcribe(audio_data, audio_format=audio_format)
        self.raw_transcript = result.text
        self.polished = None
        return result

    async def polish(self, text: Optional[str] = None) -> PolishResult:
        """
        Polish the raw transcript (or the given text) with the saved prompt.

        Raises:
            ValueError: If there is nothing to polish.
        """
        source = self.raw_transcript if text is None else text
        if not source.strip():
            raise ValueError("No content to polish. Please record some speech first")

        self.polished = await self.get_polisher().polish(
            source, self.settings.system_prompt, self.settings.examples
        )
        return self.polished

    def clear(self) -> None:
        """Clear both transcripts."""
        self.raw_transcript = ""
        self.polished = None

    def final_text(self) -> str:
        """Polished text if available, otherwise the raw transcript."""
        if self.polished is not None and self.polished.polished_text:
            return self.polished.polished_text
        return self.raw_transcript

    async def run_session(self, polish: bool = True, copy: bool = True) -> Optional[str]:
        """
        Run a complete dictation session.

        Record until Enter, transcribe, optionally polish, show both
        transcripts, and copy the result to the clipboard. Errors are shown
        to the user rather than raised.

        Returns:
            The final text, or None if the session was cancelled or failed.
        """
        try:
            if not await self.ui.prompt_start_recording(self.mode):
                return None

            self.check_ready()
            self.clear()

            await self.recorder.start_recording()
            await self.ui.show_recording_status(self.mode)
            if not await self.ui.prompt_stop_recording():
                await self.recorder.stop_recording()
                self.ui.console.print("\n[yellow]Session cancelled by user.[/yellow]")
                return None
            audio_data = await self.recorder.stop_recording()

            if not has_speech_audio(audio_data):
                raise AudioRecorderError("No audio was recorded")

            message = "Transcribing on-device..." if self.mode == "local" else "Transcribing with LLM..."
            with self.ui.progress(message):
                result = await self.transcribe(audio_data)

            if not result.text.strip():
                raise TranscriptionError("No speech detected in recording")

            if polish:
                with self.ui.progress("Polishing..."):
                    await self.polish()

            self.ui.show_transcripts(self.raw_transcript, self.polished)

            text = self.final_text()
            if copy and self._copy_to_clipboard(text):
                await self.ui.show_success("Text copied to clipboard")
            return text

        except KeyboardInterrupt:
            self.ui.console.print("\n[yellow]Session cancelled by user.[/yellow]")
            return None
        except Exception as e:
            logger.debug("Dictation session failed", exc_info=True)
            await self.ui.show_error(e)
            return None
        finally:
            if self.recorder.is_recording():
                await self.recorder.stop_recording()

    def _copy_to_clipboard(self, text: str) -> bool:
        try:
            pyperclip.copy(text)
            return True
        except pyperclip.PyperclipException as e:
            self.ui.console.print(f"[yellow]⚠️  Could not copy to clipboard: {e}[/yellow]")
            return False


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
    )


pass_store = click.make_pass_decorator(ConfigStore)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False),
    envvar="DICTATION_STUDIO_CONFIG_DIR",
    help="Directory holding the settings files"
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_dir: Optional[str]) -> None:
    """
    Dictation Studio - record, transcribe, and polish your speech with AI.

    Runs an interactive recording session when no command is given.
    """
    configure_logging(verbose)
    ctx.obj = ConfigStore(config_dir)
    if ctx.invoked_subcommand is None:
        ctx.invoke(record)


@main.command()
@click.option("--mode", type=click.Choice(TRANSCRIPTION_MODES), help="Transcription mode for this session")
@click.option("--polish/--no-polish", default=True, help="Polish the transcript after recording")
@click.option("--copy/--no-copy", default=True, help="Copy the result to the clipboard")
@click.option(
    "--model-size",
    default="base",
    type=click.Choice(LocalTranscriber.AVAILABLE_MODELS),
    help="Whisper model for on-device transcription"
)
@pass_store
def record(store: ConfigStore, mode: Optional[str], polish: bool, copy: bool, model_size: str) -> None:
    """Record from the microphone, transcribe, and polish."""
    app = DictationApp(store=store)
    app.model_size = model_size
    if mode:
        app.set_mode(mode)

    try:
        text = asyncio.run(app.run_session(polish=polish, copy=copy))
    except KeyboardInterrupt:
        click.echo("\nApplication interrupted by user.")
        sys.exit(0)

    if text is None:
        sys.exit(1)


@main.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--mode", type=click.Choice(TRANSCRIPTION_MODES), help="Transcription mode")
@click.option("--polish/--no-polish", default=False, help="Also polish the transcript")
@click.option(
    "--model-size",
    default="base",
    type=click.Choice(LocalTranscriber.AVAILABLE_MODELS),
    help="Whisper model for on-device transcription"
)
@pass_store
def transcribe(store: ConfigStore, audio_file: str, mode: Optional[str], polish: bool, model_size: str) -> None:
    """Transcribe an audio file and print the text."""
    app = DictationApp(store=store)
    app.model_size = model_size
    if mode:
        app.set_mode(mode)

    async def run() -> str:
        app.check_ready()
        result = await app.get_transcriber().transcribe_file(audio_file)
        app.raw_transcript = result.text
        if polish and result.text.strip():
            await app.polish()
        return app.final_text()

    try:
        text = asyncio.run(run())
    except (ConfigurationError, TranscriptionError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    if app.polished is not None and app.polished.fallback:
        click.echo(f"Warning: AI polishing failed, used basic cleanup ({app.polished.error})", err=True)
    click.echo(text)


@main.command()
@click.argument("text", required=False)
@click.option("--prompt", "system_prompt", help="Polishing prompt to use instead of the saved one")
@click.option("--preset", help="Use a named prompt preset")
@click.option("--fallback/--no-fallback", default=True, help="Use basic cleanup if the AI call fails")
@pass_store
def polish(
    store: ConfigStore,
    text: Optional[str],
    system_prompt: Optional[str],
    preset: Optional[str],
    fallback: bool
) -> None:
    """Polish TEXT (or standard input when TEXT is '-' or omitted)."""
    if text is None or text == "-":
        text = click.get_text_stream("stdin").read()

    settings = store.load_prompt_settings()
    if preset:
        try:
            system_prompt = get_preset(preset).prompt
        except KeyError:
            raise click.BadParameter(f"Unknown preset '{preset}'", param_hint="--preset")

    polisher = Polisher(store.load_polishing_config(), fallback=fallback)
    try:
        result = asyncio.run(polisher.polish(text, system_prompt or settings.system_prompt, settings.examples))
    except (ValueError, PolishError) as e:
        raise click.ClickException(str(e)) from e

    if result.fallback:
        click.echo(f"Warning: AI polishing failed, used basic cleanup ({result.error})", err=True)
    click.echo(result.polished_text)


@main.group()
def config() -> None:
    """Show or change provider settings."""


@config.command("show")
@click.option("--show-keys", is_flag=True, help="Show API keys in full")
@pass_store
def config_show(store: ConfigStore, show_keys: bool) -> None:
    """Show transcription and polishing settings."""
    TerminalUI().show_config(store.load_transcription_config(), store.load_polishing_config(), show_keys)
    click.echo(f"Settings directory: {store.config_dir}")


@config.command("set")
@click.argument("target", type=click.Choice(["transcription", "polishing"]))
@click.option("--provider", type=click.Choice([p.value for p in PROVIDERS]), help="Provider")
@click.option("--model", help="Model (deployment name for Azure)")
@click.option("--api-key", help="API key")
@click.option("--base-url", help="Endpoint for Azure or OpenAI-compatible servers")
@click.option("--api-version", help="Azure OpenAI API version")
@pass_store
def config_set(
    store: ConfigStore,
    target: str,
    provider: Optional[str],
    model: Optional[str],
    api_key: Optional[str],
    base_url: Optional[str],
    api_version: Optional[str]
) -> None:
    """Update the TARGET settings and save them."""
    if target == "transcription":
        current = store.load_transcription_config()
    else:
        current = store.load_polishing_config()

    updated = LLMConfig(
        provider=current.provider,
        model=current.model,
        api_key=current.api_key,
        base_url=current.base_url,
        api_version=current.api_version,
    )
    if provider and provider != current.provider:
        updated.provider = provider
        # A model from the old provider makes no sense for the new one
        suggested = get_models_for_provider(provider)
        updated.model = suggested[0] if suggested else ""
    if model is not None:
        updated.model = model
    if api_key is not None:
        updated.api_key = api_key
    if base_url is not None:
        updated.base_url = base_url or None
    if api_version is not None:
        updated.api_version = api_version or None

    try:
        store.save_llm_config(target, updated)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Saved {target} settings: {updated.provider} / {updated.model}")


@config.command("models")
@click.argument("provider")
def config_models(provider: str) -> None:
    """List suggested models for PROVIDER."""
    models = get_models_for_provider(provider)
    if not models:
        click.echo(f"No suggested models for '{provider}'; pass any model or deployment name.")
        return
    for name in models:
        click.echo(name)


@main.group()
def prompt() -> None:
    """Show or change the prompts and transcription mode."""


@prompt.command("show")
@pass_store
def prompt_show(store: ConfigStore) -> None:
    """Show prompts, mode, and examples."""
    TerminalUI().show_prompt_settings(store.load_prompt_settings())


@prompt.command("set")
@click.argument("text")
@pass_store
def prompt_set(store: ConfigStore, text: str) -> None:
    """Set the polishing prompt."""
    if not text.strip():
        raise click.BadParameter("Prompt cannot be empty", param_hint="TEXT")
    settings = store.load_prompt_settings()
    settings.system_prompt = text
    store.save_prompt_settings(settings)
    click.echo("Polishing prompt saved.")


@prompt.command("reset")
@pass_store
def prompt_reset(store: ConfigStore) -> None:
    """Reset the polishing prompt to the default."""
    settings = store.load_prompt_settings()
    settings.system_prompt = DEFAULT_SYSTEM_PROMPT
    store.save_prompt_settings(settings)
    click.echo("Polishing prompt reset to default.")


@prompt.command("presets")
def prompt_presets() -> None:
    """List the built-in prompt presets."""
    for preset in DEFAULT_PROMPTS:
        click.echo(f"{preset.name}: {preset.prompt[:60]}...")


@prompt.command("use")
@click.argument("name")
@pass_store
def prompt_use(store: ConfigStore, name: str) -> None:
    """Switch the polishing prompt to the preset NAME."""
    try:
        preset = get_preset(name)
    except KeyError:
        raise click.BadParameter(f"Unknown preset '{name}'", param_hint="NAME")
    settings = store.load_prompt_settings()
    settings.system_prompt = preset.prompt
    store.save_prompt_settings(settings)
    click.echo(f"Using preset: {preset.name}")


@prompt.command("transcription")
@click.argument("text")
@pass_store
def prompt_transcription(store: ConfigStore, text: str) -> None:
    """Set the instruction sent with audio in LLM mode."""
    settings = store.load_prompt_settings()
    settings.transcription_prompt = text
    store.save_prompt_settings(settings)
    click.echo("Transcription prompt saved.")


@prompt.command("mode")
@click.argument("mode", type=click.Choice(TRANSCRIPTION_MODES))
@pass_store
def prompt_mode(store: ConfigStore, mode: str) -> None:
    """Choose on-device ('local') or LLM ('llm') transcription."""
    settings = store.load_prompt_settings()
    settings.transcription_mode = mode
    store.save_prompt_settings(settings)
    click.echo(f"Transcription mode: {mode}")


@main.group()
def examples() -> None:
    """Manage few-shot examples for polishing."""


@examples.command("list")
@pass_store
def examples_list(store: ConfigStore) -> None:
    """List examples."""
    settings = store.load_prompt_settings()
    if not settings.examples:
        click.echo("No examples yet.")
        return
    for index, example in enumerate(settings.examples, start=1):
        click.echo(f"Example {index}:")
        click.echo(f"  Input: {example.input}")
        click.echo(f"  Output: {example.output}")


@examples.command("add")
@click.argument("input_text", metavar="INPUT")
@click.argument("output_text", metavar="OUTPUT")
@pass_store
def examples_add(store: ConfigStore, input_text: str, output_text: str) -> None:
    """Add an example of INPUT transcription and desired OUTPUT."""
    settings = store.load_prompt_settings()
    settings.examples = add_example(settings.examples, input_text, output_text)
    store.save_prompt_settings(settings)
    click.echo(f"Added example {len(settings.examples)}.")


@examples.command("update")
@click.argument("index", type=click.IntRange(min=1))
@click.option("--input", "input_text", help="New input text")
@click.option("--output", "output_text", help="New output text")
@pass_store
def examples_update(store: ConfigStore, index: int, input_text: Optional[str], output_text: Optional[str]) -> None:
    """Change example INDEX (1-based)."""
    settings = store.load_prompt_settings()
    try:
        settings.examples = update_example(settings.examples, index - 1, input_text, output_text)
    except IndexError as e:
        raise click.BadParameter(str(e), param_hint="INDEX")
    store.save_prompt_settings(settings)
    click.echo(f"Updated example {index}.")


@examples.command("remove")
@click.argument("index", type=click.IntRange(min=1))
@pass_store
def examples_remove(store: ConfigStore, index: int) -> None:
    """Remove example INDEX (1-based)."""
    settings = store.load_prompt_settings()
    try:
        settings.examples = remove_example(settings.examples, index - 1)
    except IndexError as e:
        raise click.BadParameter(str(e), param_hint="INDEX")
    store.save_prompt_settings(settings)
    click.echo(f"Removed example {index}.")


@examples.command("clear")
@pass_store
def examples_clear(store: ConfigStore) -> None:
    """Remove all examples."""
    settings = store.load_prompt_settings()
    settings.examples = []
    store.save_prompt_settings(settings)
    click.echo("Cleared all examples.")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on")
def serve(host: str, port: int) -> None:
    """Run the HTTP transcription and polishing service."""
    import uvicorn

    from .server import create_app

    uvicorn.run(create_app(), host=host, port=port)


@main.command()
def devices() -> None:
    """List microphone input devices."""
    try:
        found = get_available_devices()
    except AudioRecorderError as e:
        raise click.ClickException(str(e)) from e

    if not found:
        click.echo("No input devices found.")
        return
    for device in found:
        marker = " (default)" if device["is_default"] else ""
        click.echo(f"[{device['index']}] {device['name']} - {device['channels']} ch, "
                   f"{device['sample_rate']} Hz{marker}")


if __name__ == "__main__":
    main()
