# BigO Board - inbound reply normalizer
#
# The AI service posts replies to /api/orbit/webhook, but the body shape is
# not contractually fixed. Every body is run through an ORDERED list of
# shape extractors; the first one yielding non-empty text wins.
#
# SHAPE RULES:
#   - Order is priority: specific shapes first, raw_fallback last
#   - Extractors are pure: payload in, ExtractedReply (or None) out
#   - raw_fallback keeps data rather than dropping it (readability suffers)
#   - Only an empty payload can fail

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .errors import ParseFailure
from .replies import ReplyRecord, ResponseStore, TopicId, normalize_topic

logger = logging.getLogger(__name__)


@dataclass
class ExtractedReply:
    """Fields pulled out of a payload before the record is stamped."""
    text: str
    topic_id: Any = None
    user_id: Any = None
    message_id: Any = None


@dataclass
class PayloadShape:
    """A named extractor for one known payload shape."""
    name: str
    extract: Callable[[Any], Optional[ExtractedReply]]


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


# ═══════════════════════════════════════════════════════════════
# SHAPE EXTRACTORS
# ═══════════════════════════════════════════════════════════════

def extract_direct(payload: Any) -> Optional[ExtractedReply]:
    """{"response": "...", "topic_id": 22, "user_id": 2, "message_id": "m1"}"""
    if not isinstance(payload, dict):
        return None
    text = _text(payload.get("response"))
    if not text:
        return None
    return ExtractedReply(
        text=text,
        topic_id=payload.get("topic_id"),
        user_id=payload.get("user_id"),
        message_id=payload.get("message_id"),
    )


def extract_change_record(payload: Any) -> Optional[ExtractedReply]:
    """{"event": "message.created", "data": {"content": "...", "topic_id": 22, "id": 9}}"""
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
        return None
    data = payload["data"]
    text = _text(data.get("content")) or _text(data.get("response"))
    if not text:
        return None
    message_id = data.get("message_id")
    if message_id is None:
        message_id = data.get("id")
    return ExtractedReply(
        text=text,
        topic_id=data.get("topic_id"),
        user_id=data.get("user_id"),
        message_id=message_id,
    )


def extract_minimal(payload: Any) -> Optional[ExtractedReply]:
    """{"message": "...", "topic_id": 22}"""
    if not isinstance(payload, dict):
        return None
    text = _text(payload.get("message")) or _text(payload.get("text"))
    if not text:
        return None
    return ExtractedReply(text=text, topic_id=payload.get("topic_id"))


def extract_bare_text(payload: Any) -> Optional[ExtractedReply]:
    """The whole body is the reply."""
    text = _text(payload)
    if not text:
        return None
    return ExtractedReply(text=text.strip())


def extract_raw_fallback(payload: Any) -> Optional[ExtractedReply]:
    """Anything else non-empty: keep it, serialized."""
    if payload is None or payload == {} or payload == [] or isinstance(payload, str):
        return None
    try:
        text = json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = str(payload)
    topic_id = payload.get("topic_id") if isinstance(payload, dict) else None
    return ExtractedReply(text=text, topic_id=topic_id)


DEFAULT_SHAPES: List[PayloadShape] = [
    PayloadShape("direct", extract_direct),
    PayloadShape("change_record", extract_change_record),
    PayloadShape("minimal", extract_minimal),
    PayloadShape("bare_text", extract_bare_text),
    PayloadShape("raw_fallback", extract_raw_fallback),
]


def match_shape(payload: Any, shapes: Optional[List[PayloadShape]] = None):
    """
    Run the shapes in order.

    Returns:
        (shape_name, ExtractedReply) for the first match.

    Raises:
        ParseFailure if no shape yields text.
    """
    for shape in shapes if shapes is not None else DEFAULT_SHAPES:
        extracted = shape.extract(payload)
        if extracted is not None and extracted.text:
            return shape.name, extracted
    raise ParseFailure("No reply text found in payload")


# ═══════════════════════════════════════════════════════════════
# INGESTION
# ═══════════════════════════════════════════════════════════════

class ResponseNormalizer:
    """Turns raw webhook bodies into ReplyRecords and files them."""

    def __init__(
        self,
        store: ResponseStore,
        default_topic_id: TopicId,
        shapes: Optional[List[PayloadShape]] = None,
    ):
        self.store = store
        self.default_topic_id = default_topic_id
        self.shapes = list(shapes) if shapes is not None else list(DEFAULT_SHAPES)

    def ingest(self, payload: Any) -> ReplyRecord:
        """
        Normalize one inbound payload and append it to the store.

        The record is in the store before this returns, so acknowledging the
        caller afterwards can never lose a reply. Duplicate deliveries are
        appended again; de-duplication is the poller's job.

        Raises:
            ParseFailure if the payload is empty.
        """
        shape_name, extracted = match_shape(payload, self.shapes)
        topic_id = normalize_topic(extracted.topic_id, default=self.default_topic_id)
        record = ReplyRecord.create(
            text=extracted.text,
            topic_id=topic_id,
            message_id=extracted.message_id,
            user_id=extracted.user_id,
        )
        record = self.store.append(topic_id, record)
        logger.info(
            f"Reply ingested: topic={topic_id} shape={shape_name} "
            f"message_id={record.message_id} chars={len(record.text)}"
        )
        return record
