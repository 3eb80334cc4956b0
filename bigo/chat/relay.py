"""
Outbound relay: forwards a user's chat message to the AI service.

Fire-and-forget. The webhook only acknowledges receipt; the answer comes
back later through /api/orbit/webhook and is picked up by polling.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import requests

from bigo.config import BoardConfig

from .errors import UpstreamUnavailable, ValidationError
from .replies import TopicId, normalize_topic

logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = "message.created"


def make_message_id() -> str:
    """Sortable, locally-unique message ID (ms timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"msg-{ts}-{rand}"


@dataclass
class RelayOutcome:
    status: str
    message_id: str
    topic_id: TopicId

    def to_dict(self):
        return {
            "status": self.status,
            "message_id": self.message_id,
            "topic_id": self.topic_id,
        }


class OutboundRelay:
    """HTTP relay to the AI service's inbound notification webhook."""

    def __init__(self, cfg: BoardConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.cfg.api_key_name:
            headers["api_key_name"] = self.cfg.api_key_name
        if self.cfg.api_key_val:
            headers["api_key_val"] = self.cfg.api_key_val
        return headers

    def build_event(self, message_id: str, topic_id: TopicId, user_id: Any, text: str) -> dict:
        return {
            "event": NEW_MESSAGE_EVENT,
            "data": {
                "message_id": message_id,
                "topic_id": topic_id,
                "user_id": user_id,
                "content": text,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        }

    def send(self, topic_id: Any = None, user_id: Any = None, text: str = "") -> RelayOutcome:
        """
        Notify the AI service of a new user message. One attempt, no retry.

        Raises:
            ValidationError: empty message.
            UpstreamUnavailable: relay not configured, transport error, non-2xx.
        """
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise ValidationError("message is required")

        topic_id = normalize_topic(topic_id, default=normalize_topic(self.cfg.default_topic_id))
        if user_id is None or user_id == "":
            user_id = normalize_topic(self.cfg.default_user_id)

        if not self.cfg.relay_enabled:
            raise UpstreamUnavailable("Chat relay not configured (webhook_url missing)")

        message_id = make_message_id()
        event = self.build_event(message_id, topic_id, user_id, text)

        try:
            r = self.session.post(
                self.cfg.webhook_url,
                json=event,
                headers=self._headers(),
                timeout=self.cfg.relay_timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Relay transport error for topic={topic_id}: {e}")
            raise UpstreamUnavailable(f"AI service unreachable: {e}") from e

        if not 200 <= r.status_code < 300:
            logger.warning(
                f"Relay rejected for topic={topic_id}: HTTP {r.status_code}"
            )
            raise UpstreamUnavailable(
                f"AI service returned HTTP {r.status_code}",
                status_code=r.status_code,
            )

        logger.info(f"Message relayed: topic={topic_id} message_id={message_id}")
        return RelayOutcome(status="sent", message_id=message_id, topic_id=topic_id)
