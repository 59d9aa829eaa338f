"""
Outbound clients for the messaging channels (Twilio and the WhatsApp Cloud API).

Sending is best effort: failures are logged and reported through the return
value, never raised, because a failed reply must not affect the webhook
acknowledgement.
"""

import logging
from typing import Optional

import requests

from .. import config

logger = logging.getLogger(__name__)


class TwilioMessenger:
    """Sends replies through the Twilio Messages REST API."""

    def __init__(self, account_sid: str, auth_token: str, session: Optional[requests.Session] = None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.session = session or requests.Session()

    @property
    def messages_url(self) -> str:
        return f"{config.TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"

    def send(self, to: str, body: str, from_: Optional[str] = None) -> bool:
        data = {"To": to, "Body": body}
        if from_:
            data["From"] = from_
        try:
            response = self.session.post(
                self.messages_url,
                data=data,
                auth=(self.account_sid, self.auth_token),
                timeout=config.OUTBOUND_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            detail = e.response.text if getattr(e, "response", None) is not None else str(e)
            logger.error(f"Error sending Twilio message to {to}: {detail}")
            return False
        logger.info(f"Twilio message sent to {to}")
        return True

    def fetch_media(self, url: str) -> bytes:
        """Download inbound media; Twilio media URLs need the account credentials."""
        response = self.session.get(
            url,
            auth=(self.account_sid, self.auth_token),
            timeout=config.OUTBOUND_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        return response.content


class WhatsAppCloudMessenger:
    """Sends replies through the WhatsApp Cloud (Graph) API."""

    def __init__(self, token: str, phone_id: str, session: Optional[requests.Session] = None):
        self.token = token
        self.phone_id = phone_id
        self.session = session or requests.Session()

    def send(self, to: str, body: str, from_: Optional[str] = None) -> bool:
        try:
            response = self.session.post(
                f"{config.WHATSAPP_API_BASE}/{self.phone_id}/messages",
                json={
                    "messaging_product": "whatsapp",
                    "to": to,
                    "text": {"body": body},
                },
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Content-Type": "application/json",
                },
                timeout=config.OUTBOUND_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            detail = e.response.text if getattr(e, "response", None) is not None else str(e)
            logger.error(f"Error sending WhatsApp message to {to}: {detail}")
            return False
        logger.info(f"WhatsApp message sent to {to}")
        return True
