"""
Gateway to the Gemini model service (google-genai, async client).

This is the only module that talks to the external model. It converts a
ModelRequest into an SDK call and the SDK response into a ModelResponse, and
turns every SDK or transport failure into UpstreamError / QuotaExceededError.
It never retries.
"""

import base64
import logging
import re
from typing import Any, AsyncIterator, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from . import config
from .errors import ConfigurationError, QuotaExceededError, UpstreamError
from .models import ContentPart, GroundingChunk, ModelRequest, ModelResponse, WebChunk

logger = logging.getLogger(__name__)

_QUOTA_PATTERN = re.compile(r"\b429\b|quota|rate[ _-]?limit|resource[ _-]?exhausted", re.IGNORECASE)


def classify_error(exc: BaseException) -> UpstreamError:
    """Map an SDK or transport exception onto the pipeline's error taxonomy."""
    if isinstance(exc, UpstreamError):
        return exc
    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", "") or "")
    if code == 429 or status.upper() == "RESOURCE_EXHAUSTED" or _QUOTA_PATTERN.search(str(exc)):
        return QuotaExceededError()
    if isinstance(exc, genai_errors.APIError):
        return UpstreamError(f"Failed to analyze content. Please try again. (model service returned {code})")
    return UpstreamError()


def _to_sdk_part(part: ContentPart) -> types.Part:
    if part.inline_data is not None:
        return types.Part.from_bytes(data=part.inline_data.data, mime_type=part.inline_data.mime_type)
    return types.Part.from_text(text=part.text)


def _extract_grounding(response: Any) -> List[GroundingChunk]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    result = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            result.append(GroundingChunk())
            continue
        result.append(GroundingChunk(web=WebChunk(title=getattr(web, "title", None), uri=getattr(web, "uri", None))))
    return result


def _audio_base64(data: Any) -> Optional[str]:
    # The SDK decodes inline data to bytes; the gateway contract carries base64 text.
    if not data:
        return None
    if isinstance(data, (bytes, bytearray)):
        return base64.b64encode(bytes(data)).decode("ascii")
    return str(data)


def _extract_audio(response: Any) -> Optional[str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            return _audio_base64(inline.data)
    return None


def _response_text(response: Any) -> Optional[str]:
    try:
        return response.text
    except (AttributeError, ValueError):
        # Audio-only responses have no text parts.
        return None


class ChatHandle:
    """A model-held conversation created by the gateway."""

    def __init__(self, chat: Any):
        self._chat = chat

    async def send(self, message: str) -> str:
        try:
            response = await self._chat.send_message(message)
        except Exception as e:
            logger.error(f"Chat message failed: {e}", exc_info=True)
            raise classify_error(e) from e
        return _response_text(response) or ""


class GeminiGateway:
    """Sends ModelRequests to Gemini and returns ModelResponses."""

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        tts_model: Optional[str] = None,
    ):
        self._client = client
        self.model = model or config.GEMINI_MODEL
        self.tts_model = tts_model or config.GEMINI_TTS_MODEL

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            try:
                self._client = config.get_gemini_client()
            except ConfigurationError as e:
                # Client-side callers see a missing key as a failed analysis.
                raise UpstreamError(f"Model service is not configured: {e}") from e
        return self._client

    def _model_for(self, request: ModelRequest) -> str:
        return self.tts_model if request.audio_output else self.model

    def _contents(self, request: ModelRequest) -> List[types.Part]:
        # TTS models take no system instruction, so it always rides as the last user part.
        parts = [_to_sdk_part(p) for p in request.parts]
        parts.append(types.Part.from_text(text=request.instruction_text))
        return parts

    def _generation_config(self, request: ModelRequest) -> types.GenerateContentConfig:
        kwargs = {}
        if request.enable_search_grounding:
            kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        if request.output_schema is not None:
            kwargs["response_mime_type"] = "application/json"
            kwargs["response_schema"] = request.output_schema
        if request.audio_output:
            kwargs["response_modalities"] = ["AUDIO"]
            kwargs["speech_config"] = types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=request.voice_name or config.GEMINI_TTS_VOICE)
                )
            )
        return types.GenerateContentConfig(**kwargs)

    async def generate(self, request: ModelRequest) -> ModelResponse:
        """
        Invoke the model once for the given request.

        Raises:
            QuotaExceededError: the service signalled rate-limit or quota exhaustion.
            UpstreamError: any other transport or HTTP failure.
        """
        model = self._model_for(request)
        logger.info(f"Sending {request.task.value} request to Gemini model '{model}' "
                    f"(grounding={request.enable_search_grounding}, parts={len(request.parts)})")
        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=self._contents(request),
                config=self._generation_config(request),
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Gemini {request.task.value} request failed: {e}", exc_info=True)
            raise classify_error(e) from e

        result = ModelResponse(
            raw_text=None if request.audio_output else _response_text(response),
            raw_audio_base64=_extract_audio(response) if request.audio_output else None,
            grounding_chunks=_extract_grounding(response),
        )
        logger.info(f"Gemini {request.task.value} response received "
                    f"({len(result.raw_text or '')} chars, {len(result.grounding_chunks)} grounding chunks)")
        return result

    async def stream_speech(self, request: ModelRequest) -> AsyncIterator[str]:
        """Yield base64 PCM chunks for an audio-output request as they arrive."""
        model = self._model_for(request)
        logger.info(f"Streaming speech from Gemini model '{model}'")
        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=model,
                contents=self._contents(request),
                config=self._generation_config(request),
            )
            async for chunk in stream:
                audio = _extract_audio(chunk)
                if audio:
                    yield audio
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Gemini speech stream failed: {e}", exc_info=True)
            raise classify_error(e) from e

    def start_chat(self, request: ModelRequest) -> ChatHandle:
        """Create a conversation seeded with the request's instruction as system prompt."""
        chat = self.client.aio.chats.create(
            model=self.model,
            config=types.GenerateContentConfig(system_instruction=request.instruction_text),
        )
        logger.info("Created Gemini chat session")
        return ChatHandle(chat)
