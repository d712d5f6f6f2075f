"""
Speech-to-text transcription.

Two interchangeable transcribers: an on-device recognizer backed by
Faster Whisper, and a remote transcriber that sends the recording to a
hosted AI model (OpenAI's transcription endpoint, or a multimodal chat
model for the other providers).
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Union
from pathlib import Path
from dataclasses import dataclass, field
import asyncio
import base64
import io
import logging
import time

from ..config.settings import (
    DEFAULT_TRANSCRIPTION_PROMPT,
    LLMConfig,
    ProviderConfigurationError,
    resolve_api_key,
)
from ..polish.providers import GOOGLE_OPENAI_BASE_URL, MISTRAL_BASE_URL

try:
    from faster_whisper import WhisperModel
    FASTER_WHISPER_AVAILABLE = True
except ImportError:
    FASTER_WHISPER_AVAILABLE = False
    WhisperModel = None

try:
    import openai
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False

logger = logging.getLogger(__name__)

OPENAI_TRANSCRIPTION_MODELS = ("whisper-1", "gpt-4o-transcribe", "gpt-4o-mini-transcribe")
DEFAULT_OPENAI_TRANSCRIPTION_MODEL = "whisper-1"
DEFAULT_WHISPER_PROMPT = "Transcribe this audio accurately."

# Providers that accept audio through an OpenAI-style chat request
MULTIMODAL_BASE_URLS = {
    "google": GOOGLE_OPENAI_BASE_URL,
    "mistral": MISTRAL_BASE_URL,
}


class TranscriptionError(Exception):
    """Raised when audio could not be transcribed."""
    pass


class UnsupportedProviderError(TranscriptionError):
    """Raised when a provider cannot transcribe audio."""
    pass


@dataclass
class TranscriptionSegment:
    """A single segment of transcribed text with timing information."""
    start: float
    end: float
    text: str
    confidence: Optional[float] = None


@dataclass
class TranscriptionResult:
    """Complete transcription result with metadata."""
    text: str
    segments: List[TranscriptionSegment] = field(default_factory=list)
    language: Optional[str] = None
    duration: Optional[float] = None
    processing_time: Optional[float] = None
    provider: Optional[str] = None


class Transcriber(ABC):
    """Common interface for local and remote transcribers."""

    @abstractmethod
    async def transcribe(self, audio_data: bytes, audio_format: str = "wav") -> TranscriptionResult:
        """Transcribe audio bytes to text."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass

    async def transcribe_file(self, file_path: Union[str, Path]) -> TranscriptionResult:
        """
        Transcribe an audio file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Audio file not found: {file_path}")

        audio_format = file_path.suffix.lstrip(".").lower() or "wav"
        return await self.transcribe(file_path.read_bytes(), audio_format=audio_format)


class LocalTranscriber(Transcriber):
    """
    On-device recognizer using Faster Whisper.

    The model is loaded on first use. If the requested model or device
    cannot be loaded, smaller models and the CPU are tried in turn.
    """

    AVAILABLE_MODELS = [
        "large-v3-turbo",
        "large-v3",
        "medium",
        "small",
        "base",
        "tiny",
    ]

    def __init__(
        self,
        model_size: str = "base",
        device: str = "auto",
        compute_type: str = "int8",
        language: Optional[str] = "en",
        beam_size: int = 5,
        vad_filter: bool = True
    ):
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self.vad_filter = vad_filter
        self._model = None

    def is_available(self) -> bool:
        return FASTER_WHISPER_AVAILABLE

    def is_model_loaded(self) -> bool:
        return self._model is not None

    def get_available_models(self) -> List[str]:
        return self.AVAILABLE_MODELS.copy()

    def load_model(self) -> None:
        """
        Load the Whisper model, falling back to smaller models and to CPU.

        Raises:
            TranscriptionError: If faster-whisper is missing or nothing loads.
        """
        if not FASTER_WHISPER_AVAILABLE:
            raise TranscriptionError("faster-whisper not available. Install with: pip install faster-whisper")

        if self._model is not None:
            return

        models_to_try = [self.model_size]
        if self.model_size in self.AVAILABLE_MODELS:
            start = self.AVAILABLE_MODELS.index(self.model_size) + 1
            models_to_try.extend(self.AVAILABLE_MODELS[start:])

        devices_to_try = [self.device] if self.device == "cpu" else [self.device, "cpu"]

        last_error = None
        for model_size in models_to_try:
            for device in devices_to_try:
                try:
                    logger.info(f"Loading Whisper model: {model_size} on {device} with {self.compute_type}")
                    self._model = WhisperModel(model_size, device=device, compute_type=self.compute_type)
                except Exception as e:
                    last_error = e
                    logger.warning(f"Failed to load model '{model_size}' on device '{device}': {e}")
                    continue

                self.model_size = model_size
                self.device = device
                logger.info(f"Loaded Whisper model: {model_size} on {device}")
                return

        raise TranscriptionError(f"Failed to load any Whisper model. Last error: {last_error}")

    def _run_model(self, audio_data: bytes):
        segments, info = self._model.transcribe(
            io.BytesIO(audio_data),
            language=self.language,
            beam_size=self.beam_size,
            vad_filter=self.vad_filter,
        )
        # Segments are a lazy generator; decoding happens while iterating
        collected = [
            TranscriptionSegment(
                start=segment.start,
                end=segment.end,
                text=segment.text.strip(),
                confidence=getattr(segment, "avg_logprob", None),
            )
            for segment in segments
            if segment.text.strip()
        ]
        return collected, info

    async def transcribe(self, audio_data: bytes, audio_format: str = "wav") -> TranscriptionResult:
        """
        Transcribe audio bytes on-device.

        Raises:
            ValueError: If audio_data is empty.
            TranscriptionError: If the model fails.
        """
        if not audio_data:
            raise ValueError("Audio data cannot be empty")

        loop = asyncio.get_running_loop()
        start_time = time.time()
        try:
            await loop.run_in_executor(None, self.load_model)
            segments, info = await loop.run_in_executor(None, self._run_model, audio_data)
        except TranscriptionError:
            raise
        except Exception as e:
            logger.error(f"Local transcription failed: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        processing_time = time.time() - start_time
        duration = getattr(info, "duration", None)
        if duration:
            logger.info(f"Transcribed {duration:.2f}s of audio in {processing_time:.2f}s")

        return TranscriptionResult(
            text=" ".join(segment.text for segment in segments),
            segments=segments,
            language=getattr(info, "language", self.language),
            duration=duration,
            processing_time=processing_time,
            provider="local",
        )


class RemoteTranscriber(Transcriber):
    """
    Transcribes through a hosted AI model.

    OpenAI recordings go to the audio transcription endpoint. Google, Mistral
    and OpenAI-compatible servers get a chat request carrying the prompt and
    the audio as base64. Anthropic models do not accept audio input.

    Args:
        config: Transcription provider configuration
        prompt: Instruction sent with the audio
    """

    def __init__(self, config: LLMConfig, prompt: Optional[str] = None, timeout: float = 120.0):
        self.config = config
        self.prompt = prompt
        self.timeout = timeout
        self._client = None

    def is_available(self) -> bool:
        return OPENAI_AVAILABLE and bool(resolve_api_key(self.config))

    def _base_url(self) -> Optional[str]:
        provider = self.config.provider
        if provider == "openai":
            return None
        if provider in MULTIMODAL_BASE_URLS:
            return MULTIMODAL_BASE_URLS[provider]
        if provider == "openai-compatible":
            if not self.config.base_url:
                raise ProviderConfigurationError("Base URL required for OpenAI-compatible provider")
            return self.config.base_url
        raise UnsupportedProviderError(f"Unsupported provider: {provider}")

    def _get_client(self):
        if self._client is not None:
            return self._client

        base_url = self._base_url()
        api_key = resolve_api_key(self.config)
        if not api_key and self.config.provider != "openai-compatible":
            raise ProviderConfigurationError(f"API key required for {self.config.provider} transcription")
        if not OPENAI_AVAILABLE:
            raise TranscriptionError("openai package not available. Install with: pip install openai")

        self._client = openai.OpenAI(api_key=api_key or "EMPTY", base_url=base_url, timeout=self.timeout)
        return self._client

    def _transcription_model(self) -> str:
        model = self.config.model
        return model if model in OPENAI_TRANSCRIPTION_MODELS else DEFAULT_OPENAI_TRANSCRIPTION_MODEL

    def _transcribe_openai(self, client, audio_data: bytes, audio_format: str) -> str:
        response = client.audio.transcriptions.create(
            model=self._transcription_model(),
            file=(f"recording.{audio_format}", audio_data),
            prompt=self.prompt or DEFAULT_WHISPER_PROMPT,
        )
        return response.text

    def _transcribe_multimodal(self, client, audio_data: bytes, audio_format: str) -> str:
        response = client.chat.completions.create(
            model=self.config.model,
            messages=[{
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompt or DEFAULT_TRANSCRIPTION_PROMPT},
                    {
                        "type": "input_audio",
                        "input_audio": {
                            "data": base64.b64encode(audio_data).decode("ascii"),
                            "format": audio_format,
                        },
                    },
                ],
            }],
        )
        return response.choices[0].message.content or ""

    def _run(self, audio_data: bytes, audio_format: str) -> str:
        client = self._get_client()
        if self.config.provider == "openai":
            return self._transcribe_openai(client, audio_data, audio_format)
        return self._transcribe_multimodal(client, audio_data, audio_format)

    async def transcribe(self, audio_data: bytes, audio_format: str = "wav") -> TranscriptionResult:
        """
        Transcribe audio bytes with the configured provider.

        Raises:
            ValueError: If audio_data is empty.
            UnsupportedProviderError: If the provider cannot transcribe audio.
            ProviderConfigurationError: If the API key or base URL is missing.
            TranscriptionError: If the provider request fails.
        """
        if not audio_data:
            raise ValueError("Audio data cannot be empty")

        # Fail fast on configuration problems before touching the network
        self._get_client()

        loop = asyncio.get_running_loop()
        start_time = time.time()
        try:
            text = await loop.run_in_executor(None, self._run, audio_data, audio_format)
        except Exception as e:
            logger.error(f"{self.config.provider} transcription failed: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        return TranscriptionResult(
            text=text.strip(),
            processing_time=time.time() - start_time,
            provider=self.config.provider,
        )


def create_transcriber(
    mode: str,
    config: Optional[LLMConfig] = None,
    prompt: Optional[str] = None,
    model_size: str = "base"
) -> Transcriber:
    """
    Pick a transcriber for the transcription mode.

    Args:
        mode: 'local' for the on-device recognizer, 'llm' for a hosted model
        config: Provider configuration, required for 'llm'
        prompt: Instruction sent with the audio in 'llm' mode
        model_size: Whisper model for 'local' mode

    Raises:
        ValueError: If the mode is unknown or 'llm' has no config.
    """
    if mode == "local":
        return LocalTranscriber(model_size=model_size)
    if mode == "llm":
        if config is None:
            raise ValueError("LLM transcription requires a provider configuration")
        return RemoteTranscriber(config, prompt=prompt)
    raise ValueError(f"Unknown transcription mode: {mode}")

