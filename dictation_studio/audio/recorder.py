"""
Microphone capture using PyAudio.

Records from an input device into memory and hands back WAV bytes
suitable for either the local recognizer or a remote transcription API.
"""

import asyncio
import io
import logging
import wave
from typing import Optional, List, Dict, Any

try:
    import pyaudio
    PYAUDIO_AVAILABLE = True
except ImportError:
    PYAUDIO_AVAILABLE = False
    pyaudio = None

logger = logging.getLogger(__name__)

# 44-byte header plus a few samples
MIN_AUDIO_BYTES = 100


class AudioRecorderError(Exception):
    """Base exception for audio recorder errors."""
    pass


class MicrophonePermissionError(AudioRecorderError):
    """Raised when the microphone cannot be opened."""
    pass


class DeviceError(AudioRecorderError):
    """Raised when no audio input device is usable."""
    pass


class AudioRecorder:
    """
    Async recorder that captures 16-bit PCM from a microphone.

    A background task reads chunks from the stream while recording is active;
    stop_recording() joins it and wraps the buffer in a WAV container.

    Args:
        sample_rate: Sample rate in Hz (16kHz suits speech models)
        chunk_size: Frames read per iteration
        channels: 1 for mono, 2 for stereo
        device_index: PyAudio input device, or None for the default

    Example:
        >>> async with AudioRecorder() as recorder:
        ...     await recorder.start_recording()
        ...     audio_data = await recorder.stop_recording()
    """

    SAMPLE_WIDTH = 2  # 16-bit

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 512,
        channels: int = 1,
        device_index: Optional[int] = None
    ):
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        if channels not in (1, 2):
            raise ValueError(f"Channels must be 1 or 2, got {channels}")

        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.device_index = device_index

        self._audio = None
        self._stream = None
        self._is_recording = False
        self._frames: List[bytes] = []
        self._capture_task: Optional[asyncio.Task] = None

    async def start_recording(self) -> None:
        """
        Open the input stream and begin capturing.

        Raises:
            RuntimeError: If already recording
            DeviceError: If PyAudio is missing or there is no input device
            MicrophonePermissionError: If the stream cannot be opened
        """
        if self._is_recording:
            raise RuntimeError("Recording already in progress")

        if not PYAUDIO_AVAILABLE:
            raise DeviceError("PyAudio not available. Install with: pip install 'dictation-studio[audio]'")

        try:
            self._audio = pyaudio.PyAudio()
            if not self._has_input_devices():
                raise DeviceError("No audio input devices found")

            self._frames.clear()
            try:
                self._stream = self._audio.open(
                    format=pyaudio.paInt16,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    frames_per_buffer=self.chunk_size,
                    input_device_index=self.device_index,
                )
            except OSError as e:
                raise MicrophonePermissionError(
                    "Could not access microphone. Check that this terminal is allowed "
                    f"to use the microphone in your system privacy settings. ({e})"
                ) from e
        except AudioRecorderError:
            self._release()
            raise
        except Exception as e:
            self._release()
            raise AudioRecorderError(f"Failed to start recording: {e}") from e

        self._is_recording = True
        self._capture_task = asyncio.create_task(self._capture_loop())
        logger.info(f"Recording started: {self.sample_rate}Hz, {self.channels} channel(s)")

    async def stop_recording(self) -> bytes:
        """
        Stop capturing and return the recording as WAV bytes.

        Raises:
            RuntimeError: If not currently recording
        """
        if not self._is_recording:
            raise RuntimeError("Not currently recording")

        self._is_recording = False
        try:
            if self._capture_task:
                await self._capture_task
        finally:
            self._capture_task = None
            self._release()

        wav_data = self.frames_to_wav(self._frames)
        logger.info(f"Recording stopped: {len(wav_data)} bytes captured")
        return wav_data

    def is_recording(self) -> bool:
        return self._is_recording

    async def _capture_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._is_recording and self._stream is not None:
            try:
                data = await loop.run_in_executor(
                    None,
                    lambda: self._stream.read(self.chunk_size, exception_on_overflow=False)
                )
            except OSError as e:
                logger.warning(f"Audio read error: {e}")
                break
            if data:
                self._frames.append(data)
        logger.debug("Capture loop ended")

    def frames_to_wav(self, frames: List[bytes]) -> bytes:
        """Wrap raw PCM frames in a WAV container."""
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(self.channels)
            wav_file.setsampwidth(self.SAMPLE_WIDTH)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(b"".join(frames))
        return buffer.getvalue()

    def _has_input_devices(self) -> bool:
        try:
            for i in range(self._audio.get_device_count()):
                if self._audio.get_device_info_by_index(i).get("maxInputChannels", 0) > 0:
                    return True
        except OSError as e:
            logger.warning(f"Error checking input devices: {e}")
        return False

    def _release(self) -> None:
        """Close the stream and terminate PyAudio."""
        try:
            if self._stream is not None:
                if self._stream.is_active():
                    self._stream.stop_stream()
                self._stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        finally:
            self._stream = None

        if self._audio is not None:
            self._audio.terminate()
            self._audio = None

    async def __aenter__(self) -> "AudioRecorder":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._is_recording:
            await self.stop_recording()
        self._release()


def has_speech_audio(wav_data: Optional[bytes]) -> bool:
    """True if the WAV data holds more than an empty header."""
    return bool(wav_data) and len(wav_data) > MIN_AUDIO_BYTES


def get_available_devices() -> List[Dict[str, Any]]:
    """
    List audio input devices.

    Returns:
        Dictionaries with index, name, channels, sample_rate and is_default.

    Raises:
        DeviceError: If PyAudio is missing or devices cannot be enumerated.
    """
    if not PYAUDIO_AVAILABLE:
        raise DeviceError("PyAudio not available. Install with: pip install 'dictation-studio[audio]'")

    devices = []
    audio = pyaudio.PyAudio()
    try:
        try:
            default_index = audio.get_default_input_device_info().get("index", -1)
        except OSError:
            default_index = -1

        for i in range(audio.get_device_count()):
            info = audio.get_device_info_by_index(i)
            if info.get("maxInputChannels", 0) > 0:
                devices.append({
                    "index": i,
                    "name": info.get("name", "Unknown"),
                    "channels": info.get("maxInputChannels", 0),
                    "sample_rate": int(info.get("defaultSampleRate", 0)),
                    "is_default": i == default_index,
                })
    except OSError as e:
        raise DeviceError(f"Failed to enumerate audio devices: {e}") from e
    finally:
        audio.terminate()

    return devices
