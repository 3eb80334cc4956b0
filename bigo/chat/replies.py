"""
Reply buffer for the asynchronous chat bridge.

The AI service answers on its own schedule through the inbound webhook.
Each answer becomes an immutable ReplyRecord appended to its topic's log;
pollers only ever read the tail.

    topic 22 → [ReplyRecord, ReplyRecord, ...]   (arrival order)
"""
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Union

TopicId = Union[int, str]

# Minimum received_at step between consecutive records of one topic (seconds)
TIE_BREAK = 1e-6


def normalize_topic(value: Any, default: Optional[TopicId] = None) -> Optional[TopicId]:
    """
    Canonical topic key: ints and digit strings → int, other strings stripped.

    A webhook sends ``22`` while a URL path yields ``"22"``; both must land
    in the same log. Empty values fall back to ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    return text


def arrival_message_id(received_at: float) -> str:
    """Message id used when the external payload carries none (epoch ms)."""
    return str(int(received_at * 1000))


@dataclass(frozen=True)
class ReplyRecord:
    """One normalized AI reply."""
    text: str
    topic_id: TopicId
    message_id: str
    received_at: float
    user_id: Optional[Any] = None

    @classmethod
    def create(
        cls,
        text: str,
        topic_id: TopicId,
        message_id: Optional[Any] = None,
        user_id: Optional[Any] = None,
        received_at: Optional[float] = None,
    ) -> "ReplyRecord":
        """Stamp a new record with the ingestion clock."""
        if received_at is None:
            received_at = time.time()
        if message_id is None or message_id == "":
            message_id = arrival_message_id(received_at)
        return cls(
            text=text,
            topic_id=topic_id,
            message_id=str(message_id),
            received_at=received_at,
            user_id=user_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.text,
            "topicId": self.topic_id,
            "messageId": self.message_id,
            "userId": self.user_id,
            "timestamp": self.received_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReplyRecord":
        """Rebuild a record from the poll API shape (see to_dict)."""
        return cls(
            text=data.get("response", ""),
            topic_id=normalize_topic(data.get("topicId")),
            message_id=str(data.get("messageId", "")),
            received_at=float(data.get("timestamp") or 0.0),
            user_id=data.get("userId"),
        )


class ResponseStore:
    """
    In-memory, per-topic, append-only reply logs.

    One instance is built at startup and handed to both the inbound webhook
    and the poll endpoints. The lock covers every read and write, so a
    reader sees either the old tail or the new one.
    """

    def __init__(self):
        self._logs: Dict[TopicId, List[ReplyRecord]] = {}
        self._lock = threading.Lock()

    def append(self, topic_id: TopicId, record: ReplyRecord) -> ReplyRecord:
        """
        Append a record, creating the topic's log on first use.

        received_at is kept strictly increasing along each log: a record
        stamped before the current tail (two ingests racing for the lock)
        is re-stamped just after it. Returns the record as stored.
        """
        key = normalize_topic(topic_id)
        with self._lock:
            log = self._logs.setdefault(key, [])
            if log and record.received_at <= log[-1].received_at:
                record = replace(record, received_at=log[-1].received_at + TIE_BREAK)
            log.append(record)
            return record

    def latest(self, topic_id: TopicId) -> Optional[ReplyRecord]:
        """Most recent record for the topic, or None."""
        key = normalize_topic(topic_id)
        with self._lock:
            log = self._logs.get(key)
            return log[-1] if log else None

    def all(self, topic_id: TopicId) -> List[ReplyRecord]:
        """Full history in arrival order (a copy)."""
        key = normalize_topic(topic_id)
        with self._lock:
            return list(self._logs.get(key, []))

    def clear(self, topic_id: TopicId) -> None:
        """Drop the topic's log entirely."""
        key = normalize_topic(topic_id)
        with self._lock:
            self._logs.pop(key, None)

    def topics(self) -> List[TopicId]:
        with self._lock:
            return list(self._logs.keys())

    def __len__(self) -> int:
        with self._lock:
            return sum(len(log) for log in self._logs.values())
