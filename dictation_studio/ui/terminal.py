"""
Rich-based terminal user interface.

Renders the recording prompts, progress spinners, the raw and polished
transcripts, and the settings views for the dictation application.
"""

from contextlib import contextmanager
from typing import Iterator, Optional
import asyncio
import time

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich import box

from ..config.settings import LLMConfig, PromptSettings, get_provider_info, mask_api_key
from ..polish.providers import PolishResult


class TerminalUI:
    """
    Rich-based terminal interface for the dictation application.

    Prompts block on stdin in a worker thread so the event loop keeps
    servicing the recorder while the user speaks.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._recording_start_time: Optional[float] = None

    async def _wait_for_enter(self, prompt: str = "") -> bool:
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: input(prompt))
            return True
        except (KeyboardInterrupt, EOFError):
            return False

    async def prompt_start_recording(self, mode: str = "llm") -> bool:
        """
        Show the welcome panel and wait for Enter.

        Returns:
            True if the user wants to start recording, False otherwise.
        """
        welcome = Text()
        welcome.append("🎙️  AI Dictation Studio", style="bold magenta")
        welcome.append("\n\nRecord, transcribe, and polish your speech with AI\n")
        welcome.append(f"Transcription: {'on-device' if mode == 'local' else 'LLM'}", style="dim")

        self.console.print(Panel(welcome, title="Welcome", title_align="center",
                                 border_style="cyan", padding=(1, 2)))
        self.console.print("\n📋 Instructions:")
        self.console.print("  • Press [bold green]Enter[/bold green] to start recording")
        self.console.print("  • Speak clearly into your microphone")
        self.console.print("  • Press [bold red]Enter[/bold red] again to stop")
        self.console.print()

        return await self._wait_for_enter("Press Enter to start recording (or Ctrl+C to quit): ")

    async def show_recording_status(self, mode: str = "llm") -> None:
        """Display the recording indicator."""
        self._recording_start_time = time.time()
        label = "LLM" if mode == "llm" else "On-device"
        panel = Panel(
            Text(f"🔴 RECORDING ({label})", style="bold red")
            + Text("\n\nSpeak now... Press Enter to stop", style="white"),
            title="Recording Audio",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        )
        self.console.print(panel)

    async def prompt_stop_recording(self) -> bool:
        """
        Wait for the user to stop recording.

        Returns:
            True when the user pressed Enter, False if input was interrupted.
        """
        stopped = await self._wait_for_enter()
        if self._recording_start_time:
            duration = time.time() - self._recording_start_time
            self.console.print(f"⏹️  Recording stopped ({duration:.1f}s)")
            self._recording_start_time = None
        else:
            self.console.print("⏹️  Recording stopped")
        self.console.print()
        return stopped

    @contextmanager
    def progress(self, message: str) -> Iterator[None]:
        """Show a spinner while the wrapped block runs."""
        with self.console.status(f"[cyan]{message}[/cyan]", spinner="dots"):
            yield

    def show_transcripts(self, raw: str, polished: Optional[PolishResult] = None) -> None:
        """Show the polished version (if any) above the raw transcription."""
        if polished is not None:
            subtitle = None
            style = "green"
            if polished.fallback:
                subtitle = "[yellow]basic cleanup, AI polishing failed[/yellow]"
                style = "yellow"
            elif polished.model:
                subtitle = f"[dim]{polished.provider} · {polished.model}[/dim]"
            self.console.print(Panel(
                polished.polished_text or "[dim]Polished text will appear here...[/dim]",
                title="Polished Version",
                subtitle=subtitle,
                border_style=style,
                padding=(1, 2)
            ))

        self.console.print(Panel(
            raw or "[dim]Your transcription will appear here...[/dim]",
            title="Raw Transcription",
            border_style="blue",
            padding=(1, 2)
        ))

    def show_config(self, transcription: LLMConfig, polishing: LLMConfig, show_keys: bool = False) -> None:
        """Render both LLM configurations side by side."""
        table = Table(title="LLM Configuration", title_style="bold cyan",
                      box=box.ROUNDED, header_style="bold white")
        table.add_column("Setting", style="cyan")
        table.add_column("Transcription", style="white")
        table.add_column("Polishing", style="white")

        def provider_label(config: LLMConfig) -> str:
            info = get_provider_info(config.provider)
            return info.label if info else config.provider or "(not set)"

        def key_label(config: LLMConfig) -> str:
            if show_keys:
                return config.api_key or "(not set)"
            return mask_api_key(config.api_key)

        table.add_row("Provider", provider_label(transcription), provider_label(polishing))
        table.add_row("Model", transcription.model or "(not set)", polishing.model or "(not set)")
        table.add_row("API Key", key_label(transcription), key_label(polishing))
        if transcription.base_url or polishing.base_url:
            table.add_row("Base URL", transcription.base_url or "", polishing.base_url or "")
        if transcription.api_version or polishing.api_version:
            table.add_row("API Version", transcription.api_version or "", polishing.api_version or "")

        self.console.print(table)
        self.console.print("[dim]• Transcription converts recordings to text; polishing improves the text")
        self.console.print("[dim]• API keys are stored locally in your settings directory")
        self.console.print("[dim]• Different providers can be used for each function")

    def show_prompt_settings(self, settings: PromptSettings) -> None:
        """Render the prompts, transcription mode, and few-shot examples."""
        mode = "LLM" if settings.transcription_mode == "llm" else "On-device"
        self.console.print(f"[bold]Transcription mode:[/bold] {mode}")
        self.console.print(Panel(settings.system_prompt, title="Polishing Prompt", border_style="cyan"))
        self.console.print(Panel(settings.transcription_prompt, title="Transcription Prompt", border_style="cyan"))

        if not settings.examples:
            self.console.print("[dim]No examples yet. Add examples to improve AI performance.[/dim]")
            return

        for index, example in enumerate(settings.examples, start=1):
            body = Group(
                Text("Input", style="bold"),
                Text(example.input or "(empty)"),
                Text("Output", style="bold"),
                Text(example.output or "(empty)"),
            )
            self.console.print(Panel(body, title=f"Example {index}", border_style="magenta"))

    async def show_error(self, error: Exception) -> None:
        """Display an error panel with a hint for common causes."""
        message = str(error)
        lowered = message.lower()

        if "microphone" in lowered or "audio input" in lowered or "pyaudio" in lowered:
            guidance = "\n\n💡 Check that a microphone is connected and this terminal may use it."
        elif "configure" in lowered or "api key" in lowered or "settings" in lowered:
            guidance = "\n\n💡 Run 'dictation-studio config set' to configure your providers."
        elif "timeout" in lowered or "connection" in lowered:
            guidance = "\n\n💡 Check your internet connection and try again."
        else:
            guidance = ""

        self.console.print(Panel(
            Text(f"❌ {message}{guidance}", style="red"),
            title="Error",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        ))

    async def show_success(self, message: str) -> None:
        """Display a success panel."""
        self.console.print(Panel(
            f"✅ {message}",
            title="Success",
            title_align="center",
            border_style="green",
            padding=(1, 2)
        ))
