# line.py - LINE Messaging API reply + webhook signature check
import base64
import hashlib
import hmac
import logging

import requests

from errors import DeliveryFailure

logger = logging.getLogger(__name__)

LINE_REPLY_URL = "https://api.line.me/v2/bot/message/reply"
# LINE rejects text messages longer than this
MAX_TEXT_LENGTH = 5000


class LineMessagingClient:
    def __init__(self, access_token, timeout=10, session=None):
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def reply(self, reply_token, text):
        if not reply_token:
            raise DeliveryFailure("No reply token in event")
        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text[:MAX_TEXT_LENGTH]}],
        }
        try:
            r = self.session.post(
                LINE_REPLY_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise DeliveryFailure("LINE reply request failed") from exc


def verify_signature(channel_secret, body, signature):
    """Check the X-Line-Signature header against the raw request body."""
    if not signature:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)
