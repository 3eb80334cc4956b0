#!/usr/bin/env python3
"""
BigO Board Server
-----------------
Kanban card API plus the asynchronous AI chat bridge.

Usage:
    python board_server.py
    python board_server.py --port 3001 --config board.yaml
    BIGO_WEBHOOK_URL=https://ai.example.com/hooks/new-message python board_server.py

Chat bridge API:
    POST   /api/orbit/chat                 → relay a user message to the AI service
                                             body: { message, topic_id?, user_id? }
    POST   /api/orbit/webhook              → AI service delivers a reply (any shape)
    GET    /api/orbit/response/<topic_id>  → { hasResponse, response?, messageId?, timestamp? }
    GET    /api/orbit/responses/<topic_id> → { responses: [...] }
    DELETE /api/orbit/response/<topic_id>  → { success: true }
    GET    /api/chat/config                → public chat settings

Card API:
    GET    /api/cards                      POST /api/cards
    GET    /api/cards/<id>                 PUT  /api/cards/<id>      DELETE /api/cards/<id>
    GET    /api/cards/column/<column>      GET  /api/cards/search/<query>
    GET    /api/board/stats                GET  /api/board/columns
"""

import argparse
import hmac
import json
import logging
from datetime import datetime, timezone
from functools import wraps

from flask import Flask, jsonify, request

from bigo.config import BoardConfig
from bigo.chat.errors import ParseFailure, UpstreamUnavailable, ValidationError
from bigo.chat.normalizer import ResponseNormalizer
from bigo.chat.relay import OutboundRelay
from bigo.chat.replies import ResponseStore, normalize_topic
from bigo.kanban.schema import Column
from bigo.kanban.store import CardStore

logger = logging.getLogger("bigo.server")


def create_app(
    cfg: BoardConfig = None,
    cards: CardStore = None,
    replies: ResponseStore = None,
    relay: OutboundRelay = None,
) -> Flask:
    """
    Build the Flask app. Stores and relay are created once here (or injected)
    and shared by every handler through closures.
    """
    cfg = cfg or BoardConfig.load()
    cards = cards or CardStore(cfg.db_path)
    replies = replies if replies is not None else ResponseStore()
    relay = relay or OutboundRelay(cfg)
    default_topic = normalize_topic(cfg.default_topic_id)
    normalizer = ResponseNormalizer(replies, default_topic_id=default_topic)

    app = Flask(__name__)
    app.config["BOARD"] = cfg
    app.extensions["bigo"] = {
        "cards": cards,
        "replies": replies,
        "relay": relay,
        "normalizer": normalizer,
    }

    # ── Auth ─────────────────────────────────────────────────────────────────

    def require_webhook_key(f):
        """Decorator: when webhook_secret is set, demand a matching X-API-Key."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if not cfg.webhook_secret:
                return f(*args, **kwargs)
            provided = request.headers.get("X-API-Key", "").strip()
            if not hmac.compare_digest(provided, cfg.webhook_secret):
                code = 401 if not provided else 403
                return jsonify({"error": "Unauthorized"}), code
            return f(*args, **kwargs)
        return decorated

    # ── Errors ───────────────────────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ParseFailure)
    def handle_parse_failure(e):
        logger.warning(f"Webhook payload rejected: {e}")
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"Unhandled error on {request.method} {request.path}: {e}")
        return jsonify({"error": "Internal server error"}), 500

    # ── Chat bridge ──────────────────────────────────────────────────────────

    @app.route("/api/chat/config")
    def api_chat_config():
        return jsonify({
            "topic_id": default_topic,
            "user_id": normalize_topic(cfg.default_user_id),
            "poll_interval": cfg.poll_interval,
            "poll_max_attempts": cfg.poll_max_attempts,
            "relay_enabled": cfg.relay_enabled,
        })

    @app.route("/api/orbit/chat", methods=["POST"])
    def api_send_message():
        data = request.get_json(force=True, silent=True) or {}
        if not isinstance(data, dict):
            data = {}
        topic_id = normalize_topic(data.get("topic_id"), default=default_topic)
        try:
            outcome = relay.send(
                topic_id=topic_id,
                user_id=data.get("user_id"),
                text=data.get("message", ""),
            )
        except ValidationError as e:
            return jsonify({"status": "error", "error": str(e), "topic_id": topic_id}), 400
        except UpstreamUnavailable as e:
            return jsonify({"status": "error", "error": str(e), "topic_id": topic_id}), 502
        return jsonify(outcome.to_dict())

    @app.route("/api/orbit/webhook", methods=["POST"])
    @require_webhook_key
    def api_receive_reply():
        if request.form:
            # Form-encoded deliveries carry the same keys as the JSON shapes
            payload = request.form.to_dict()
        else:
            raw = request.get_data(as_text=True)
            try:
                payload = json.loads(raw) if raw.strip() else None
            except ValueError:
                payload = raw
        record = normalizer.ingest(payload)
        return jsonify({"received": True, "topic_id": record.topic_id})

    @app.route("/api/orbit/response/<topic_id>", methods=["GET"])
    def api_poll_latest(topic_id):
        record = replies.latest(topic_id)
        if record is None:
            return jsonify({"hasResponse": False})
        body = record.to_dict()
        body["hasResponse"] = True
        return jsonify(body)

    @app.route("/api/orbit/responses/<topic_id>", methods=["GET"])
    def api_list_replies(topic_id):
        return jsonify({"responses": [r.to_dict() for r in replies.all(topic_id)]})

    @app.route("/api/orbit/response/<topic_id>", methods=["DELETE"])
    def api_clear_topic(topic_id):
        replies.clear(topic_id)
        logger.info(f"Reply log cleared: topic={normalize_topic(topic_id)}")
        return jsonify({"success": True})

    # ── Cards ────────────────────────────────────────────────────────────────

    def invalid_column():
        return jsonify({"error": "Invalid column", "validColumns": Column.values()}), 400

    def card_not_found():
        return jsonify({"error": "Card not found"}), 404

    @app.route("/api/cards", methods=["GET"])
    def api_cards():
        return jsonify([c.to_dict() for c in cards.list()])

    @app.route("/api/cards/<int:card_id>", methods=["GET"])
    def api_get_card(card_id):
        card = cards.get(card_id)
        if not card:
            return card_not_found()
        return jsonify(card.to_dict())

    @app.route("/api/cards/column/<column>", methods=["GET"])
    def api_cards_in_column(column):
        col = Column.parse(column)
        if col is None:
            return invalid_column()
        return jsonify([c.to_dict() for c in cards.list_by_column(col)])

    @app.route("/api/cards/search/<query>", methods=["GET"])
    def api_search_cards(query):
        return jsonify([c.to_dict() for c in cards.search(query)])

    @app.route("/api/cards", methods=["POST"])
    def api_create_card():
        data = request.get_json(force=True, silent=True) or {}
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            return jsonify({"error": "Title is required and must be a non-empty string"}), 400
        if not data.get("column"):
            return jsonify({"error": "Column is required"}), 400
        col = Column.parse(data["column"])
        if col is None:
            return invalid_column()

        description = data.get("description") or ""
        card = cards.create(title.strip(), str(description).strip(), col)
        logger.info(f"Card created: id={card.id} column={col.value}")
        return jsonify(card.to_dict()), 201

    @app.route("/api/cards/<int:card_id>", methods=["PUT"])
    def api_update_card(card_id):
        data = request.get_json(force=True, silent=True) or {}
        if not cards.get(card_id):
            return card_not_found()

        fields = {}
        if "title" in data:
            title = data["title"]
            if not isinstance(title, str) or not title.strip():
                return jsonify({"error": "Title must be a non-empty string"}), 400
            fields["title"] = title.strip()
        if "description" in data:
            fields["description"] = str(data["description"] or "").strip()
        if "column" in data:
            col = Column.parse(data["column"])
            if col is None:
                return invalid_column()
            fields["column"] = col

        card = cards.update(card_id, fields)
        if not card:
            return card_not_found()
        return jsonify(card.to_dict())

    @app.route("/api/cards/<int:card_id>", methods=["DELETE"])
    def api_delete_card(card_id):
        card = cards.delete(card_id)
        if not card:
            return card_not_found()
        logger.info(f"Card deleted: id={card_id}")
        return jsonify({"success": True, "deleted": card.to_dict()})

    @app.route("/api/board/stats")
    def api_board_stats():
        return jsonify(cards.get_stats())

    @app.route("/api/board/columns")
    def api_board_columns():
        grouped = cards.columns()
        return jsonify({col: [c.to_dict() for c in items] for col, items in grouped.items()})

    # ── Health ───────────────────────────────────────────────────────────────

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "topics": len(replies.topics()),
            "relay": "configured" if cfg.relay_enabled else "off",
        })

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="BigO Board Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3001)
    parser.add_argument("--config", default=None, help="Path to board.yaml")
    parser.add_argument("--db", help="Path to board.db (overrides BIGO_DB)")
    parser.add_argument("--webhook-url", default=None,
                        help="AI service inbound webhook URL (overrides BIGO_WEBHOOK_URL)")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    cfg = BoardConfig.load(args.config)
    if args.db:
        cfg.db_path = args.db
    if args.webhook_url:
        cfg.webhook_url = args.webhook_url
    cfg.resolve()

    cards = CardStore(cfg.db_path)
    if cfg.seed_samples:
        cards.seed_samples()

    if not cfg.relay_enabled:
        logger.warning("BIGO_WEBHOOK_URL not set - chat messages will fail with 502")

    app = create_app(cfg, cards=cards)

    print(f"""
╔═══════════════════════════════════════╗
║  BigO Board Server                    ║
╠═══════════════════════════════════════╣
║  URL:   http://{args.host}:{args.port:<19}║
║  DB:    {str(cfg.db_path)[:30]:<30}║
║  Topic: {str(cfg.default_topic_id):<30}║
╚═══════════════════════════════════════╝
""")

    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
