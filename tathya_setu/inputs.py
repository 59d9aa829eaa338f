"""
Converts raw user content into the canonical AnalysisRequest payload.
"""

import re
import logging
from typing import Optional, Union

from . import config
from .errors import EmptyInputError, UnsupportedMediaError
from .languages import Language, resolve_language
from .models import AnalysisRequest, ContentKind, MediaPayload, UrlReference

logger = logging.getLogger(__name__)

_URL_ONLY = re.compile(r"^https?://\S+$", re.IGNORECASE)

RawContent = Union[str, MediaPayload, UrlReference, dict]


def normalize_input(
    content: RawContent,
    language: Union[str, Language] = Language.EN,
    caption: Optional[str] = None,
) -> AnalysisRequest:
    """
    Build the canonical request for one piece of user content.

    Args:
        content: Plain text (or a bare URL string), a MediaPayload, or a URL
            reference given as UrlReference or {"type": "url", "value": ...}.
        language: Target language for the natural-language result fields.
        caption: Optional text sent alongside media.

    Returns:
        An AnalysisRequest. Media bytes are passed through untouched; URLs are
        kept as literal text and never fetched here.

    Raises:
        EmptyInputError: the text (or URL) is empty after trimming.
        TypeError: the content has any other shape.
    """
    target = resolve_language(language)

    if isinstance(content, dict) and content.get("type") == "url":
        content = UrlReference(value=str(content.get("value") or ""))

    if isinstance(content, MediaPayload):
        note = caption.strip() if caption else None
        return AnalysisRequest(
            content_kind=ContentKind.MEDIA,
            media=content,
            text_body=note or None,
            target_language=target,
        )

    if isinstance(content, UrlReference):
        value = content.value.strip()
        if not value:
            raise EmptyInputError()
        return AnalysisRequest(content_kind=ContentKind.URL, text_body=value, target_language=target)

    if isinstance(content, str):
        text = content.strip()
        if not text:
            raise EmptyInputError()
        kind = ContentKind.URL if _URL_ONLY.match(text) else ContentKind.TEXT
        return AnalysisRequest(content_kind=kind, text_body=text, target_language=target)

    raise TypeError(f"Unsupported content type: {type(content).__name__}")


def validate_upload(mime_type: Optional[str], size: int) -> None:
    """Reject uploads outside the accepted media types or above the size ceiling."""
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime not in config.ALLOWED_MEDIA_TYPES:
        logger.warning(f"Rejected upload with unsupported type '{mime_type}'")
        raise UnsupportedMediaError(f"Unsupported file type: {mime_type or 'unknown'}. "
                                    "Upload a JPEG, PNG or WEBP image, WAV or MP3 audio, or MP4 video.")
    if size > config.MAX_UPLOAD_BYTES:
        logger.warning(f"Rejected upload of {size} bytes (limit {config.MAX_UPLOAD_BYTES})")
        raise UnsupportedMediaError(
            f"File is too large. The limit is {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB.",
            too_large=True,
        )
