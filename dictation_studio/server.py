"""
HTTP service exposing transcription and polishing.

Serves the same two routes a browser front end calls: multipart audio
upload for transcription and a JSON request for polishing.
"""

from pathlib import PurePath
from typing import Any, Dict, List, Optional
import logging

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .audio.transcriber import RemoteTranscriber, UnsupportedProviderError
from .config.settings import Example, LLMConfig, ProviderConfigurationError
from .polish.polisher import MISSING_FIELDS_MESSAGE, Polisher

logger = logging.getLogger(__name__)


class ExamplePayload(BaseModel):
    input: str = ""
    output: str = ""


class PolishRequest(BaseModel):
    transcript: Optional[str] = None
    systemPrompt: Optional[str] = None
    examples: List[ExamplePayload] = []
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    apiKey: Optional[str] = None
    baseURL: Optional[str] = None
    apiVersion: Optional[str] = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _audio_format(upload: UploadFile) -> str:
    """Guess the container format from the filename, then the content type."""
    suffix = PurePath(upload.filename or "").suffix.lstrip(".").lower()
    if suffix:
        return suffix
    content_type = (upload.content_type or "").split(";")[0]
    if content_type.startswith("audio/"):
        return content_type.split("/", 1)[1]
    return "wav"


def create_app(allow_origins: Optional[List[str]] = None) -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(title="Dictation Studio", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.post("/api/transcribe")
    async def transcribe(
        audio: Optional[UploadFile] = File(None),
        provider: Optional[str] = Form(None),
        model: Optional[str] = Form(None),
        apiKey: Optional[str] = Form(None),
        systemPrompt: Optional[str] = Form(None),
    ):
        if audio is None or not provider or not model or not apiKey:
            return _error("Missing required fields", 400)

        config = LLMConfig(provider=provider, model=model, api_key=apiKey)
        transcriber = RemoteTranscriber(config, prompt=systemPrompt or None)

        try:
            audio_data = await audio.read()
            result = await transcriber.transcribe(audio_data, audio_format=_audio_format(audio))
        except (UnsupportedProviderError, ProviderConfigurationError):
            # The form carries no base URL, so endpoint-only providers cannot be served
            return _error("Unsupported provider", 400)
        except ValueError:
            return _error("Missing required fields", 400)
        except Exception:
            logger.exception("Transcription error")
            return _error("Failed to transcribe audio", 500)

        return {"transcription": result.text}

    @app.post("/api/polish")
    async def polish(payload: PolishRequest):
        if not payload.transcript or not payload.systemPrompt:
            return _error(MISSING_FIELDS_MESSAGE, 400)

        config = LLMConfig(
            provider=payload.provider,
            model=payload.model,
            api_key=payload.apiKey or "",
            base_url=payload.baseURL,
            api_version=payload.apiVersion,
        )
        examples = [Example(input=item.input, output=item.output) for item in payload.examples]

        try:
            result = await Polisher(config, fallback=False).polish(
                payload.transcript, payload.systemPrompt, examples
            )
        except ValueError:
            return _error(MISSING_FIELDS_MESSAGE, 400)
        except Exception:
            logger.exception("Error polishing transcript")
            return _error("Failed to polish transcript", 500)

        return {"polishedText": result.polished_text}

    return app
