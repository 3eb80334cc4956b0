# BigO Board - HTTP client
#
# Talks to a running board_server over its JSON API. Used by chat_client.py
# to send a message and to poll for the asynchronous reply.

import requests
from typing import Any, Dict, List, Optional

from .errors import UpstreamUnavailable, ValidationError
from .replies import ReplyRecord, TopicId


class BoardClient:
    """HTTP client for the BigO Board chat API."""

    def __init__(self, base_url: str = "http://localhost:3001", timeout: float = 5):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def send_message(self, text: str, topic_id: Optional[TopicId] = None,
                     user_id: Optional[Any] = None) -> Dict[str, Any]:
        """POST /api/orbit/chat. Returns {status, message_id, topic_id}."""
        body: Dict[str, Any] = {"message": text}
        if topic_id is not None:
            body["topic_id"] = topic_id
        if user_id is not None:
            body["user_id"] = user_id

        try:
            r = self.session.post(
                f"{self.base_url}/api/orbit/chat", json=body, timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Board server unreachable: {e}") from e

        if r.status_code == 400:
            try:
                detail = r.json().get("error", "invalid message")
            except ValueError:
                detail = r.text[:200] or "invalid message"
            raise ValidationError(detail)
        if not r.ok:
            try:
                detail = r.json().get("error", "")
            except ValueError:
                detail = r.text[:200]
            raise UpstreamUnavailable(
                f"Send failed (HTTP {r.status_code}): {detail}", status_code=r.status_code,
            )
        return r.json()

    def poll_latest(self, topic_id: TopicId) -> Dict[str, Any]:
        """GET /api/orbit/response/<topic>. Raises on transport/HTTP errors."""
        r = self.session.get(
            f"{self.base_url}/api/orbit/response/{topic_id}", timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def fetch_latest(self, topic_id: TopicId) -> Optional[ReplyRecord]:
        """poll_latest() as a ReplyRecord, for PollController."""
        data = self.poll_latest(topic_id)
        if not data.get("hasResponse") or not data.get("response"):
            return None
        data.setdefault("topicId", topic_id)
        return ReplyRecord.from_dict(data)

    def list_replies(self, topic_id: TopicId) -> List[Dict[str, Any]]:
        r = self.session.get(
            f"{self.base_url}/api/orbit/responses/{topic_id}", timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json().get("responses", [])

    def clear_topic(self, topic_id: TopicId) -> bool:
        try:
            r = self.session.delete(
                f"{self.base_url}/api/orbit/response/{topic_id}", timeout=self.timeout,
            )
            return r.ok
        except requests.RequestException:
            return False

    def health(self) -> bool:
        """Check if the board server is reachable."""
        try:
            r = self.session.get(f"{self.base_url}/health", timeout=2)
            return r.ok
        except requests.RequestException:
            return False
