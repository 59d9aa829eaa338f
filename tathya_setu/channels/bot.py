"""
Messaging-bot handling shared by the Twilio and WhatsApp Cloud webhooks.

The webhook routes acknowledge immediately and hand the parsed message to
`handle_inbound_message` as a background task. That task runs the bot-channel
analysis and sends exactly one reply: the report, or a single apology when
anything goes wrong.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from .. import config
from ..errors import UnsupportedMediaError, UpstreamError
from ..inputs import validate_upload
from ..languages import Language, resolve_language
from ..models import Channel, MediaPayload
from ..pipeline import FactCheckPipeline
from .report import APOLOGY_MESSAGE, UNSUPPORTED_MEDIA_MESSAGE, format_report

logger = logging.getLogger(__name__)


class InboundMessage(BaseModel):
    """One user message received from a messaging channel."""
    body: str = ""
    sender: str = ""
    recipient: str = ""
    num_media: int = 0
    media_url: Optional[str] = None
    media_content_type: Optional[str] = None

    @classmethod
    def from_twilio_form(cls, form: Mapping[str, Any]) -> "InboundMessage":
        try:
            num_media = int(form.get("NumMedia") or 0)
        except (TypeError, ValueError):
            num_media = 0
        return cls(
            body=str(form.get("Body") or ""),
            sender=str(form.get("From") or ""),
            recipient=str(form.get("To") or ""),
            num_media=num_media,
            media_url=form.get("MediaUrl0") or None,
            media_content_type=form.get("MediaContentType0") or None,
        )

    @property
    def has_media(self) -> bool:
        return self.num_media > 0 and bool(self.media_url)

    def is_empty(self) -> bool:
        return not self.body.strip() and not self.has_media


def extract_cloud_message(payload: Dict[str, Any]) -> Optional[InboundMessage]:
    """Pull the first text message out of a WhatsApp Cloud API webhook payload."""
    try:
        message = payload["entry"][0]["changes"][0]["value"]["messages"][0]
    except (KeyError, IndexError, TypeError):
        return None
    text = (message.get("text") or {}).get("body") or ""
    return InboundMessage(body=text, sender=str(message.get("from") or ""))


async def _load_content(message: InboundMessage, messenger: Any) -> Union[str, MediaPayload]:
    if not message.has_media:
        return message.body
    validate_upload(message.media_content_type, 0)
    data = await run_in_threadpool(messenger.fetch_media, message.media_url)
    validate_upload(message.media_content_type, len(data))
    return MediaPayload(data=data, mime_type=message.media_content_type)


async def handle_inbound_message(
    message: InboundMessage,
    pipeline: FactCheckPipeline,
    messenger: Any,
    language: Optional[Union[str, Language]] = None,
) -> bool:
    """
    Analyze one inbound message and reply to its sender.

    Returns False when the message was empty and ignored (nothing is sent),
    True when a reply (report or apology) was attempted.
    """
    if message.is_empty():
        logger.info(f"Ignoring empty message from {message.sender or 'unknown sender'}")
        return False

    target = resolve_language(language or config.BOT_LANGUAGE)
    try:
        content = await _load_content(message, messenger)
        caption = message.body if isinstance(content, MediaPayload) else None
        outcome = await pipeline.analyze(content, target, channel=Channel.BOT, caption=caption)
        reply = format_report(outcome)
        logger.info(f"Replying to {message.sender} with verdict {outcome.result.verdict.value}")
    except UnsupportedMediaError as e:
        logger.warning(f"Unsupported media from {message.sender}: {e}")
        reply = UNSUPPORTED_MEDIA_MESSAGE
    except UpstreamError as e:
        logger.error(f"Model call failed for message from {message.sender}: {e}")
        reply = APOLOGY_MESSAGE
    except Exception as e:
        logger.error(f"Error processing message from {message.sender}: {e}", exc_info=True)
        reply = APOLOGY_MESSAGE

    # The reply goes back from the number the user wrote to.
    await run_in_threadpool(messenger.send, message.sender, reply, message.recipient or None)
    return True
