"""
Poll controller: discovers an asynchronous AI reply by bounded polling.

Per conversation:

    IDLE → POLLING → DELIVERED   (a new reply was surfaced)
                   → EXHAUSTED   (attempt cap reached; timeout notice)
                   → CANCELLED   (chat closed, or a newer session started)

Each session runs on its own daemon thread and sleeps on a stop Event,
so cancelling wakes it at the next tick boundary. A reply counts as new
when its received_at is strictly greater than the last one surfaced for
that topic, so a reply already surfaced is never shown twice.
"""
import logging
import threading
from enum import Enum
from typing import Callable, Dict, Optional

from bigo.config import BoardConfig

from .replies import ReplyRecord, TopicId, normalize_topic

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 30

TIMEOUT_NOTICE = "No response received. The AI might be processing or there was an error."

Fetch = Callable[[TopicId], Optional[ReplyRecord]]


class PollState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    DELIVERED = "delivered"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PollState.DELIVERED, PollState.EXHAUSTED, PollState.CANCELLED)


class PollSession:
    """
    One bounded polling loop for one topic.

    Created by PollController.start(); tick() may also be driven directly.
    """

    def __init__(
        self,
        topic_id: TopicId,
        fetch: Fetch,
        on_reply: Callable[[ReplyRecord], None],
        on_timeout: Optional[Callable[["PollSession"], None]] = None,
        interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        last_observed: Optional[float] = None,
    ):
        self.topic_id = topic_id
        self.fetch = fetch
        self.on_reply = on_reply
        self.on_timeout = on_timeout
        self.interval = interval
        self.max_attempts = max_attempts
        self.last_observed = last_observed
        self.attempts = 0
        self.errors = 0
        self.state = PollState.IDLE
        self.delivered: Optional[ReplyRecord] = None
        self._stop = threading.Event()
        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self.state is PollState.POLLING

    def begin(self) -> None:
        """IDLE → POLLING with a fresh attempt counter."""
        with self._lock:
            if self.state is not PollState.IDLE:
                return
            self.attempts = 0
            self.state = PollState.POLLING

    def _is_new(self, record: ReplyRecord) -> bool:
        return self.last_observed is None or record.received_at > self.last_observed

    def tick(self) -> PollState:
        """Run one poll attempt and return the resulting state."""
        if self.state is not PollState.POLLING:
            return self.state

        self.attempts += 1
        try:
            record = self.fetch(self.topic_id)
        except Exception as e:
            # Transient: counts against the budget, no state change
            self.errors += 1
            logger.warning(
                f"Poll error topic={self.topic_id} "
                f"attempt={self.attempts}/{self.max_attempts}: {e}"
            )
            record = None

        with self._lock:
            if self.state is not PollState.POLLING:
                return self.state

            if record is not None and self._is_new(record):
                self.last_observed = record.received_at
                self.delivered = record
                self.state = PollState.DELIVERED
                self._stop.set()
                logger.info(
                    f"Reply delivered: topic={self.topic_id} "
                    f"message_id={record.message_id} attempts={self.attempts}"
                )
                self.on_reply(record)

            elif self.attempts >= self.max_attempts:
                self.state = PollState.EXHAUSTED
                self._stop.set()
                logger.info(
                    f"Poll exhausted: topic={self.topic_id} "
                    f"attempts={self.attempts} errors={self.errors}"
                )
                if self.on_timeout:
                    self.on_timeout(self)

            return self.state

    def run(self) -> None:
        """Tick every `interval` seconds until a terminal state."""
        while not self._stop.wait(self.interval):
            try:
                if self.tick().is_terminal:
                    break
            except Exception:
                logger.exception(f"Poll callback failed for topic={self.topic_id}")
                break

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self.run, name=f"poll-{self.topic_id}", daemon=True,
        )
        self._thread.start()

    def cancel(self) -> bool:
        """Stop the loop. Returns False if the session had already ended."""
        with self._lock:
            if self.state.is_terminal:
                return False
            self.state = PollState.CANCELLED
            self._stop.set()
        logger.debug(f"Poll cancelled: topic={self.topic_id} attempts={self.attempts}")
        return True

    def wait(self, timeout: Optional[float] = None) -> PollState:
        """Block until the loop thread exits (or timeout)."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.state


class PollController:
    """
    Owns at most one live PollSession per topic.

    Starting a session for a topic cancels the previous one, so a single
    reply can never be announced twice for the same conversation.
    """

    def __init__(
        self,
        fetch: Fetch,
        interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.fetch = fetch
        self.interval = interval
        self.max_attempts = max_attempts
        self._sessions: Dict[TopicId, PollSession] = {}
        self._last_seen: Dict[TopicId, float] = {}
        self._lock = threading.Lock()
        self._seen_lock = threading.Lock()

    @classmethod
    def from_config(cls, fetch: Fetch, cfg: BoardConfig) -> "PollController":
        return cls(fetch, interval=cfg.poll_interval, max_attempts=cfg.poll_max_attempts)

    def last_observed(self, topic_id: TopicId) -> Optional[float]:
        with self._seen_lock:
            return self._last_seen.get(normalize_topic(topic_id))

    def _remember(self, key: TopicId, record: ReplyRecord) -> None:
        with self._seen_lock:
            prev = self._last_seen.get(key)
            if prev is None or record.received_at > prev:
                self._last_seen[key] = record.received_at

    def mark_seen(self, topic_id: TopicId, record: ReplyRecord) -> None:
        """Treat `record` as already shown, e.g. a reply left over from an earlier run."""
        self._remember(normalize_topic(topic_id), record)

    def start(
        self,
        topic_id: TopicId,
        on_reply: Callable[[ReplyRecord], None],
        on_timeout: Optional[Callable[[PollSession], None]] = None,
        run: bool = True,
    ) -> PollSession:
        """
        Begin polling a topic, cancelling any live session for it.

        With run=False the caller drives session.tick() itself.
        """
        key = normalize_topic(topic_id)

        def deliver(record: ReplyRecord) -> None:
            self._remember(key, record)
            on_reply(record)

        with self._lock:
            previous = self._sessions.get(key)
            if previous is not None:
                previous.cancel()
            session = PollSession(
                topic_id=key,
                fetch=self.fetch,
                on_reply=deliver,
                on_timeout=on_timeout,
                interval=self.interval,
                max_attempts=self.max_attempts,
                last_observed=self.last_observed(key),
            )
            self._sessions[key] = session

        session.begin()
        if run:
            session.start()
        return session

    def active(self, topic_id: TopicId) -> Optional[PollSession]:
        """The live session for a topic, if any."""
        with self._lock:
            session = self._sessions.get(normalize_topic(topic_id))
        if session is not None and session.active:
            return session
        return None

    def cancel(self, topic_id: TopicId) -> bool:
        with self._lock:
            session = self._sessions.pop(normalize_topic(topic_id), None)
        return session.cancel() if session else False

    def cancel_all(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        return sum(1 for s in sessions if s.cancel())
