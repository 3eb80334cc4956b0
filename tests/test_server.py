"""
Tests for the board server routes (board_server.py).

Covers:
    - /api/orbit/chat       - relay outcomes mapped to 200 / 400 / 502
    - /api/orbit/webhook    - every payload shape, 400 on empty body, webhook key
    - /api/orbit/response*  - poll latest, list all, clear
    - end-to-end            - send, ingest, poll the reply
    - /api/cards, /api/board - card collaborator CRUD and validation
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from board_server import create_app
from bigo.chat.poller import PollController, PollState
from bigo.chat.relay import OutboundRelay
from bigo.chat.replies import ReplyRecord
from bigo.kanban.store import CardStore


@pytest.fixture
def ai_session():
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=200)
    return session


@pytest.fixture
def app(cfg, store, ai_session):
    cards = CardStore(cfg.db_path)
    cards.seed_samples()
    application = create_app(cfg, cards=cards, replies=store,
                             relay=OutboundRelay(cfg, session=ai_session))
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Chat bridge
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSendMessage:

    def test_sent(self, client, ai_session):
        r = client.post("/api/orbit/chat", json={"message": "move card 3 to done", "topic_id": 22})
        assert r.status_code == 200
        body = r.get_json()
        assert body["status"] == "sent"
        assert body["topic_id"] == 22
        assert body["message_id"].startswith("msg-")
        ai_session.post.assert_called_once()

    def test_default_topic(self, client):
        r = client.post("/api/orbit/chat", json={"message": "hi"})
        assert r.get_json()["topic_id"] == 22

    def test_empty_message(self, client, ai_session):
        r = client.post("/api/orbit/chat", json={"message": "  "})
        assert r.status_code == 400
        assert r.get_json()["status"] == "error"
        ai_session.post.assert_not_called()

    def test_upstream_error(self, client, ai_session):
        ai_session.post.return_value = MagicMock(status_code=500)
        r = client.post("/api/orbit/chat", json={"message": "hi", "topic_id": 22})
        assert r.status_code == 502
        body = r.get_json()
        assert body["status"] == "error"
        assert body["topic_id"] == 22

    def test_upstream_unreachable(self, client, ai_session):
        ai_session.post.side_effect = requests.ConnectionError("refused")
        r = client.post("/api/orbit/chat", json={"message": "hi"})
        assert r.status_code == 502


class TestReceiveReply:

    @pytest.mark.parametrize("payload", [
        {"response": "Card 3 moved.", "topic_id": 22},
        {"event": "message.created", "data": {"content": "Card 3 moved.", "topic_id": 22}},
        {"message": "Card 3 moved.", "topic_id": 22},
    ])
    def test_json_shapes(self, client, store, payload):
        r = client.post("/api/orbit/webhook", json=payload)
        assert r.status_code == 200
        assert r.get_json() == {"received": True, "topic_id": 22}
        assert store.latest(22).text == "Card 3 moved."

    def test_plain_text_body(self, client, store):
        r = client.post("/api/orbit/webhook", data="Card 3 moved.", content_type="text/plain")
        assert r.status_code == 200
        assert store.latest(22).text == "Card 3 moved."

    def test_form_encoded_body(self, client, store):
        r = client.post("/api/orbit/webhook", data={"response": "Card 3 moved.", "topic_id": "23"})
        assert r.status_code == 200
        assert r.get_json() == {"received": True, "topic_id": 23}
        assert [rec.text for rec in store.all(23)] == ["Card 3 moved."]
        assert store.all(22) == []

    def test_unknown_shape_kept_raw(self, client, store):
        r = client.post("/api/orbit/webhook", json={"weird": {"nested": 1}, "topic_id": 9})
        assert r.status_code == 200
        assert json.loads(store.latest(9).text) == {"weird": {"nested": 1}, "topic_id": 9}

    @pytest.mark.parametrize("body", ["", "{}", "null", "   "])
    def test_empty_body_rejected(self, client, store, body):
        r = client.post("/api/orbit/webhook", data=body, content_type="application/json")
        assert r.status_code == 400
        assert "error" in r.get_json()
        assert len(store) == 0

    def test_webhook_secret_enforced(self, app, client, cfg, store):
        cfg.webhook_secret = "s3cret"
        r = client.post("/api/orbit/webhook", json={"response": "x"})
        assert r.status_code == 401
        r = client.post("/api/orbit/webhook", json={"response": "x"}, headers={"X-API-Key": "wrong"})
        assert r.status_code == 403
        r = client.post("/api/orbit/webhook", json={"response": "x"}, headers={"X-API-Key": "s3cret"})
        assert r.status_code == 200
        assert len(store) == 1


class TestPollEndpoints:

    def test_no_response_yet(self, client):
        r = client.get("/api/orbit/response/22")
        assert r.get_json() == {"hasResponse": False}

    def test_latest(self, client, store):
        store.append(22, ReplyRecord.create("first", 22, message_id="m1", received_at=1.0))
        store.append(22, ReplyRecord.create("second", 22, message_id="m2", received_at=2.0))
        body = client.get("/api/orbit/response/22").get_json()
        assert body["hasResponse"] is True
        assert body["response"] == "second"
        assert body["messageId"] == "m2"
        assert body["timestamp"] == 2.0

    def test_list_all(self, client, store):
        for i in range(3):
            store.append(22, ReplyRecord.create(f"r{i}", 22, received_at=float(i)))
        body = client.get("/api/orbit/responses/22").get_json()
        assert [r["response"] for r in body["responses"]] == ["r0", "r1", "r2"]

    def test_list_unknown_topic(self, client):
        assert client.get("/api/orbit/responses/404").get_json() == {"responses": []}

    def test_clear(self, client, store):
        store.append(22, ReplyRecord.create("x", 22))
        r = client.delete("/api/orbit/response/22")
        assert r.get_json() == {"success": True}
        assert store.all(22) == []

    def test_chat_config(self, client, cfg):
        body = client.get("/api/chat/config").get_json()
        assert body["topic_id"] == 22
        assert body["poll_interval"] == cfg.poll_interval
        assert body["poll_max_attempts"] == cfg.poll_max_attempts


class TestRoundTrip:

    def test_send_ingest_poll(self, client):
        sent = client.post("/api/orbit/chat", json={"message": "move card 3 to done", "topic_id": 22})
        assert sent.get_json()["status"] == "sent"

        client.post("/api/orbit/webhook", json={"response": "Card 3 moved.", "topic_id": 22})

        body = client.get("/api/orbit/response/22").get_json()
        assert body["hasResponse"] is True
        assert body["response"] == "Card 3 moved."

    def test_poll_controller_over_the_api(self, client):
        def fetch(topic_id):
            data = client.get(f"/api/orbit/response/{topic_id}").get_json()
            return ReplyRecord.from_dict(data) if data["hasResponse"] else None

        delivered = []
        ctl = PollController(fetch, max_attempts=5)
        session = ctl.start(22, delivered.append, run=False)

        assert session.tick() is PollState.POLLING
        client.post("/api/orbit/webhook", json={"response": "Card 3 moved.", "topic_id": 22})
        assert session.tick() is PollState.DELIVERED
        assert [r.text for r in delivered] == ["Card 3 moved."]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cards
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCards:

    def test_list_seeded(self, client):
        cards = client.get("/api/cards").get_json()
        assert [c["column"] for c in cards] == ["todo", "in-progress", "done"]

    def test_get(self, client):
        assert client.get("/api/cards/1").get_json()["title"] == "Sample Task 1"
        assert client.get("/api/cards/999").status_code == 404

    def test_create(self, client):
        r = client.post("/api/cards", json={"title": "  New  ", "column": "todo"})
        assert r.status_code == 201
        card = r.get_json()
        assert card["title"] == "New"
        assert card["id"] == 4

    @pytest.mark.parametrize("body,error", [
        ({"column": "todo"}, "Title"),
        ({"title": "   ", "column": "todo"}, "Title"),
        ({"title": "x"}, "Column is required"),
        ({"title": "x", "column": "later"}, "Invalid column"),
    ])
    def test_create_validation(self, client, body, error):
        r = client.post("/api/cards", json=body)
        assert r.status_code == 400
        assert error in r.get_json()["error"]

    def test_invalid_column_lists_valid_ones(self, client):
        body = client.post("/api/cards", json={"title": "x", "column": "later"}).get_json()
        assert body["validColumns"] == ["todo", "in-progress", "done"]

    def test_update_moves_card(self, client):
        r = client.put("/api/cards/3", json={"column": "todo", "description": " d "})
        assert r.status_code == 200
        assert r.get_json()["column"] == "todo"
        assert r.get_json()["description"] == "d"

    def test_update_validation(self, client):
        assert client.put("/api/cards/1", json={"title": ""}).status_code == 400
        assert client.put("/api/cards/1", json={"column": "nope"}).status_code == 400
        assert client.put("/api/cards/999", json={"title": "x"}).status_code == 404

    def test_delete(self, client):
        r = client.delete("/api/cards/2")
        assert r.get_json()["success"] is True
        assert r.get_json()["deleted"]["id"] == 2
        assert client.delete("/api/cards/2").status_code == 404

    def test_column_and_search(self, client):
        assert len(client.get("/api/cards/column/done").get_json()) == 1
        assert client.get("/api/cards/column/later").status_code == 400
        assert len(client.get("/api/cards/search/another").get_json()) == 1
        assert len(client.get("/api/cards/search/SAMPLE").get_json()) == 3

    def test_stats_and_columns(self, client):
        stats = client.get("/api/board/stats").get_json()
        assert stats == {"todo": 1, "in-progress": 1, "done": 1, "total": 3}
        columns = client.get("/api/board/columns").get_json()
        assert set(columns) == {"todo", "in-progress", "done"}

    def test_health(self, client):
        body = client.get("/health").get_json()
        assert body["status"] == "ok"
        assert body["relay"] == "configured"
