"""
Configuration for the TathyaSetu verification backend.
"""

import os
import logging
from typing import List

from dotenv import load_dotenv
from google import genai

from .errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
GEMINI_TTS_MODEL = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
GEMINI_TTS_VOICE = os.getenv("GEMINI_TTS_VOICE", "Puck")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_API_BASE = os.getenv("TWILIO_API_BASE", "https://api.twilio.com/2010-04-01")

WHATSAPP_TOKEN = os.getenv("WHATSAPP_TOKEN")
WHATSAPP_PHONE_ID = os.getenv("WHATSAPP_PHONE_ID")
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN")
WHATSAPP_API_BASE = os.getenv("WHATSAPP_API_BASE", "https://graph.facebook.com/v17.0")

BOT_LANGUAGE = os.getenv("BOT_LANGUAGE", "en")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))
ALLOWED_MEDIA_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "audio/wav",
    "audio/x-wav",
    "audio/mpeg",
    "audio/mp3",
    "video/mp4",
})

BOT_SOURCE_LIMIT = 3
DEFAULT_NEWS_COUNT = 4
TTS_SAMPLE_RATE = 24000
TTS_CHANNELS = 1
OUTBOUND_TIMEOUT_SECONDS = float(os.getenv("OUTBOUND_TIMEOUT_SECONDS", "15"))
PORT = int(os.getenv("PORT", "8000"))
MAX_CHAT_SESSIONS = int(os.getenv("MAX_CHAT_SESSIONS", "1000"))
MAX_TRACKED_CLIENTS = int(os.getenv("MAX_TRACKED_CLIENTS", "10000"))


def get_gemini_client() -> genai.Client:
    """Get the Gemini client used by the model gateway."""
    if not GEMINI_API_KEY:
        raise ConfigurationError(["GEMINI_API_KEY"])
    logger.info(f"Initializing Gemini client for model '{GEMINI_MODEL}'")
    return genai.Client(api_key=GEMINI_API_KEY)


def missing_server_config() -> List[str]:
    """Names of the credentials the webhook server cannot start without."""
    required = {
        "GEMINI_API_KEY": GEMINI_API_KEY,
        "TWILIO_ACCOUNT_SID": TWILIO_ACCOUNT_SID,
        "TWILIO_AUTH_TOKEN": TWILIO_AUTH_TOKEN,
    }
    return [name for name, value in required.items() if not value]


def validate_server_config() -> None:
    missing = missing_server_config()
    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}. Please check the .env file.")
        raise ConfigurationError(missing)


def whatsapp_cloud_enabled() -> bool:
    return bool(WHATSAPP_TOKEN and WHATSAPP_PHONE_ID)
