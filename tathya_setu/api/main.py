"""
API endpoints for the TathyaSetu verification backend.

Serves the web client and the browser extension (analysis, translation,
news, chat, speech) and the messaging-bot webhooks.
"""

import base64
import binascii
import logging
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from .. import config
from ..audio import AudioPlayer, WavRenderSink
from ..channels.bot import InboundMessage, extract_cloud_message, handle_inbound_message
from ..channels.messengers import TwilioMessenger, WhatsAppCloudMessenger
from ..errors import (
    ConfigurationError,
    EmptyInputError,
    QuotaExceededError,
    StaleResponseError,
    UnsupportedMediaError,
    UpstreamError,
)
from ..inputs import validate_upload
from ..languages import Language
from ..models import AnalysisOutcome, AnalysisResult, MediaPayload, NewsItem, UrlReference
from ..normalizer import normalize_analysis
from ..pipeline import ChatSession, FactCheckPipeline, RequestSequencer

# Setup basic logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Raising here aborts startup, so the server process exits without credentials.
    config.validate_server_config()
    logger.info("Configuration validated, TathyaSetu API starting.")
    yield


app = FastAPI(
    title="TathyaSetu Verification API",
    description="Misinformation checks for text, media and links, grounded with live web search.",
    version="1.0.0",
    lifespan=lifespan,
)

# In-memory state; lives only as long as the process.
chat_sessions: Dict[str, ChatSession] = {}
client_sequencers: Dict[str, RequestSequencer] = {}


def _touch(store: Dict[str, Any], key: str, value: Any, limit: int) -> List[Any]:
    """Store value as the most recently used entry; returns the entries evicted to stay within limit."""
    store.pop(key, None)
    store[key] = value
    evicted = []
    while len(store) > limit:
        # Dicts keep insertion order, so the first key is the least recently used.
        evicted.append(store.pop(next(iter(store))))
    return evicted


# --- Request / response models ---

class MediaBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: str = Field(..., description="Base64-encoded media bytes.")
    mime_type: str = Field(..., alias="mimeType")


class AnalyzeBody(BaseModel):
    text: Optional[str] = None
    url: Optional[str] = None
    media: Optional[MediaBody] = None
    language: Language = Language.EN


class TranslateBody(BaseModel):
    result: Dict[str, Any]
    language: Language


class TranslateBatchBody(BaseModel):
    result: Dict[str, Any]
    languages: List[Language] = Field(..., min_length=1)


class ChatStartBody(BaseModel):
    language: Language = Language.EN
    context: Optional[Dict[str, Any]] = None


class ChatStartResponse(BaseModel):
    session_id: str


class ChatMessageBody(BaseModel):
    message: str


class ChatReply(BaseModel):
    reply: str


class SpeechBody(BaseModel):
    text: str


# --- Dependencies ---

@lru_cache(maxsize=1)
def get_pipeline() -> FactCheckPipeline:
    return FactCheckPipeline()


def get_twilio_messenger() -> TwilioMessenger:
    return TwilioMessenger(config.TWILIO_ACCOUNT_SID or "", config.TWILIO_AUTH_TOKEN or "")


def get_whatsapp_messenger() -> WhatsAppCloudMessenger:
    if not config.whatsapp_cloud_enabled():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="WhatsApp Cloud channel is not configured")
    return WhatsAppCloudMessenger(config.WHATSAPP_TOKEN, config.WHATSAPP_PHONE_ID)


def get_sequencer(x_client_id: Optional[str] = Header(None)) -> Optional[RequestSequencer]:
    if not x_client_id:
        return None
    sequencer = client_sequencers.get(x_client_id) or RequestSequencer()
    _touch(client_sequencers, x_client_id, sequencer, config.MAX_TRACKED_CLIENTS)
    return sequencer


async def _latest_only(sequencer: Optional[RequestSequencer], awaitable):
    if sequencer is None:
        return await awaitable
    return await sequencer.run_latest(awaitable)


# --- Error mapping ---

@app.exception_handler(EmptyInputError)
async def empty_input_handler(request: Request, exc: EmptyInputError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(UnsupportedMediaError)
async def unsupported_media_handler(request: Request, exc: UnsupportedMediaError):
    code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if exc.too_large else status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(QuotaExceededError)
async def quota_handler(request: Request, exc: QuotaExceededError):
    return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content={"detail": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_handler(request: Request, exc: UpstreamError):
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@app.exception_handler(StaleResponseError)
async def stale_handler(request: Request, exc: StaleResponseError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


# --- Web client / extension endpoints ---

@app.post("/analyze", response_model=AnalysisOutcome, response_model_exclude_none=True)
async def analyze_endpoint(
    body: AnalyzeBody,
    pipeline: FactCheckPipeline = Depends(get_pipeline),
    sequencer: Optional[RequestSequencer] = Depends(get_sequencer),
):
    """Analyze text, a URL, or base64 media sent as JSON."""
    caption = None
    if body.media is not None:
        try:
            data = base64.b64decode(body.media.data, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Media data is not valid base64")
        validate_upload(body.media.mime_type, len(data))
        content = MediaPayload(data=data, mime_type=body.media.mime_type)
        caption = body.text
    elif body.url and body.url.strip():
        content = UrlReference(value=body.url)
    else:
        content = body.text or ""

    logger.info(f"Received analyze request ({type(content).__name__}) in '{body.language.value}'")
    return await _latest_only(sequencer, pipeline.analyze(content, body.language, caption=caption))


@app.post("/analyze/media", response_model=AnalysisOutcome, response_model_exclude_none=True)
async def analyze_media_endpoint(
    file: UploadFile = File(...),
    language: Language = Form(Language.EN),
    text: Optional[str] = Form(None),
    pipeline: FactCheckPipeline = Depends(get_pipeline),
    sequencer: Optional[RequestSequencer] = Depends(get_sequencer),
):
    """Analyze an uploaded image, audio clip or video."""
    validate_upload(file.content_type, file.size or 0)
    data = await file.read()
    validate_upload(file.content_type, len(data))
    logger.info(f"Received media upload '{file.filename}' ({file.content_type}, {len(data)} bytes)")
    media = MediaPayload(data=data, mime_type=file.content_type)
    return await _latest_only(sequencer, pipeline.analyze(media, language, caption=text))


@app.post("/translate", response_model=AnalysisResult, response_model_exclude_none=True)
async def translate_endpoint(
    body: TranslateBody,
    pipeline: FactCheckPipeline = Depends(get_pipeline),
    sequencer: Optional[RequestSequencer] = Depends(get_sequencer),
):
    return await _latest_only(sequencer, pipeline.translate(normalize_analysis(body.result), body.language))


@app.post("/translate/batch", response_model=Dict[Language, AnalysisResult],
          response_model_exclude_none=True)
async def translate_batch_endpoint(body: TranslateBatchBody, pipeline: FactCheckPipeline = Depends(get_pipeline)):
    return await pipeline.translate_many(normalize_analysis(body.result), body.languages)


@app.get("/news", response_model=List[NewsItem])
async def news_endpoint(
    language: Language = Query(Language.EN),
    category: str = Query("Trending"),
    count: int = Query(config.DEFAULT_NEWS_COUNT, ge=1, le=20),
    pipeline: FactCheckPipeline = Depends(get_pipeline),
):
    return await pipeline.fetch_news(language, category, count)


@app.post("/chat/sessions", response_model=ChatStartResponse, status_code=status.HTTP_201_CREATED)
async def start_chat_endpoint(body: ChatStartBody, pipeline: FactCheckPipeline = Depends(get_pipeline)):
    session_id = str(uuid.uuid4())
    context = normalize_analysis(body.context) if body.context is not None else None
    session = pipeline.start_chat(body.language, context)
    for stale in _touch(chat_sessions, session_id, session, config.MAX_CHAT_SESSIONS):
        stale.close()
        logger.info("Evicted least recently used chat session")
    logger.info(f"Chat session {session_id} started in '{body.language.value}'")
    return ChatStartResponse(session_id=session_id)


def _get_session(session_id: str) -> ChatSession:
    session = chat_sessions.get(session_id)
    if session is None:
        logger.warning(f"Chat session not found: {session_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat session not found")
    _touch(chat_sessions, session_id, session, config.MAX_CHAT_SESSIONS)
    return session


@app.post("/chat/sessions/{session_id}/messages", response_model=ChatReply)
async def chat_message_endpoint(session_id: str, body: ChatMessageBody):
    session = _get_session(session_id)
    return ChatReply(reply=await session.send(body.message))


@app.delete("/chat/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_chat_endpoint(session_id: str):
    session = _get_session(session_id)
    session.close()
    chat_sessions.pop(session_id, None)
    logger.info(f"Chat session {session_id} closed")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/speech")
async def speech_endpoint(body: SpeechBody, pipeline: FactCheckPipeline = Depends(get_pipeline)):
    """Read text aloud; returns the synthesized speech as a WAV file."""
    sink = WavRenderSink()
    player = AudioPlayer(lambda: sink)
    handle = await pipeline.speak(body.text, player)
    wav = sink.to_wav_bytes()
    handle.stop()
    return Response(content=wav, media_type="audio/wav")


# --- Messaging-bot webhooks ---

@app.post("/webhook/twilio")
async def twilio_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: FactCheckPipeline = Depends(get_pipeline),
    messenger: TwilioMessenger = Depends(get_twilio_messenger),
):
    """Acknowledge at once; the analysis and the reply happen in the background."""
    try:
        form = await request.form()
        message = InboundMessage.from_twilio_form(form)
    except Exception as e:
        logger.error(f"Could not parse Twilio webhook payload: {e}", exc_info=True)
        return PlainTextResponse("", status_code=status.HTTP_200_OK)

    if message.is_empty():
        logger.info("Twilio webhook with empty payload acknowledged and ignored")
    else:
        background_tasks.add_task(handle_inbound_message, message, pipeline, messenger)
    return PlainTextResponse("", status_code=status.HTTP_200_OK)


@app.get("/webhook/whatsapp")
async def whatsapp_verify(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Webhook verification handshake required by Meta."""
    if hub_mode == "subscribe" and config.WHATSAPP_VERIFY_TOKEN and hub_verify_token == config.WHATSAPP_VERIFY_TOKEN:
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(hub_challenge or "")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@app.post("/webhook/whatsapp")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: FactCheckPipeline = Depends(get_pipeline),
    messenger: WhatsAppCloudMessenger = Depends(get_whatsapp_messenger),
):
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("WhatsApp webhook body is not JSON; acknowledged and ignored")
        return Response(status_code=status.HTTP_200_OK)

    message = extract_cloud_message(payload) if isinstance(payload, dict) else None
    if message is None or message.is_empty():
        # Delivery/status callbacks carry no user text.
        return Response(status_code=status.HTTP_200_OK)
    background_tasks.add_task(handle_inbound_message, message, pipeline, messenger)
    return Response(status_code=status.HTTP_200_OK)


@app.get("/")
async def root():
    return {"message": "Welcome to the TathyaSetu Verification API!"}


def main():
    try:
        config.validate_server_config()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(1)
    uvicorn.run("tathya_setu.api.main:app", host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    main()
