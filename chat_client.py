#!/usr/bin/env python3
"""
BigO Board - chat client

Sends one message to the AI assistant through a running board server,
then polls for the asynchronous reply (2s interval, 30 attempts by default).

Usage:
    python chat_client.py "move card 3 to done"
    python chat_client.py --topic 22 --server http://localhost:3001 "create a card for the release"
    python chat_client.py --history --topic 22      # print every buffered reply
    python chat_client.py --clear --topic 22        # reset a stale conversation
"""

import argparse
import logging
import sys
import threading

import requests

from bigo.config import BoardConfig
from bigo.chat.client import BoardClient
from bigo.chat.errors import BridgeError
from bigo.chat.poller import PollController, PollState, TIMEOUT_NOTICE

logger = logging.getLogger("bigo.client")


def ask(client: BoardClient, controller: PollController, text: str,
        topic_id=None, user_id=None, out=sys.stdout) -> PollState:
    """Send a message and block until the reply arrives, polling gives up, or Ctrl+C."""
    if topic_id is not None:
        try:
            stale = client.fetch_latest(topic_id)
        except requests.RequestException:
            stale = None
        if stale is not None:
            controller.mark_seen(topic_id, stale)

    sent = client.send_message(text, topic_id=topic_id, user_id=user_id)
    topic = sent.get("topic_id", topic_id)
    print(f"→ sent ({sent.get('message_id')}) topic={topic}", file=out)
    print("  AI is thinking...", file=out)

    done = threading.Event()

    def on_reply(record):
        print(f"\n{record.text}\n", file=out)
        done.set()

    def on_timeout(session):
        print(f"\n[!] {TIMEOUT_NOTICE}", file=out)
        done.set()

    session = controller.start(topic, on_reply=on_reply, on_timeout=on_timeout)
    try:
        while not done.wait(0.5):
            if not session.active:
                break
    except KeyboardInterrupt:
        session.cancel()
        print("\nStopped waiting.", file=out)
    return session.wait(timeout=1)


def main():
    ap = argparse.ArgumentParser(
        description="BigO Board chat client - message the AI assistant and wait for its reply"
    )
    ap.add_argument("message", nargs="*", help="Message text")
    ap.add_argument("--server", default="http://localhost:3001", help="Board server base URL")
    ap.add_argument("--topic", default=None, help="Conversation topic id (default from config)")
    ap.add_argument("--user", default=None, help="User id (default from config)")
    ap.add_argument("--config", default=None, help="Path to board.yaml")
    ap.add_argument("--history", action="store_true", help="Print every buffered reply for the topic")
    ap.add_argument("--clear", action="store_true", help="Clear the topic's buffered replies")
    ap.add_argument("--log-level", default="WARNING")
    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    cfg = BoardConfig.load(args.config)
    topic = args.topic or cfg.default_topic_id
    client = BoardClient(args.server)

    if not client.health():
        print(f"Board server not reachable at {args.server}", file=sys.stderr)
        sys.exit(1)

    if args.clear:
        ok = client.clear_topic(topic)
        print("Cleared." if ok else "Clear failed.")
        sys.exit(0 if ok else 1)

    if args.history:
        for r in client.list_replies(topic):
            print(f"[{r.get('messageId')}] {r.get('response')}")
        sys.exit(0)

    text = " ".join(args.message).strip()
    if not text:
        ap.error("message is required")

    controller = PollController.from_config(client.fetch_latest, cfg)
    try:
        state = ask(client, controller, text, topic_id=topic, user_id=args.user or cfg.default_user_id)
    except BridgeError as e:
        print(f"[!] Error connecting to AI assistant: {e}", file=sys.stderr)
        sys.exit(2)
    finally:
        controller.cancel_all()

    sys.exit(0 if state is PollState.DELIVERED else 3)


if __name__ == "__main__":
    main()
