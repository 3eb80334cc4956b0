"""
Tests for the outbound relay (bigo/chat/relay.py).

Covers:
    - make_message_id()  - format
    - OutboundRelay.send - payload, headers, defaults, 2xx / non-2xx / transport errors
"""

from unittest.mock import MagicMock

import pytest
import requests

from bigo.chat.errors import UpstreamUnavailable, ValidationError
from bigo.chat.relay import NEW_MESSAGE_EVENT, OutboundRelay, make_message_id


def _session(status_code=200, exc=None):
    session = MagicMock()
    if exc is not None:
        session.post.side_effect = exc
    else:
        session.post.return_value = MagicMock(status_code=status_code)
    return session


class TestMakeMessageId:

    def test_format(self):
        mid = make_message_id()
        prefix, ts, rand = mid.split("-", 2)
        assert prefix == "msg"
        assert ts.isdigit()
        assert len(rand) == 8

    def test_unique(self):
        assert len({make_message_id() for _ in range(100)}) == 100


class TestOutboundRelay:

    def test_sent_on_2xx(self, cfg):
        session = _session(202)
        relay = OutboundRelay(cfg, session=session)
        outcome = relay.send(topic_id=22, user_id=1, text="move card 3 to done")

        assert outcome.status == "sent"
        assert outcome.topic_id == 22
        assert outcome.message_id.startswith("msg-")
        assert outcome.to_dict()["topic_id"] == 22

    def test_posts_new_message_event(self, cfg):
        session = _session()
        OutboundRelay(cfg, session=session).send(topic_id=22, user_id=5, text="  hello  ")

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == cfg.webhook_url
        body = kwargs["json"]
        assert body["event"] == NEW_MESSAGE_EVENT
        assert body["data"]["content"] == "hello"
        assert body["data"]["topic_id"] == 22
        assert body["data"]["user_id"] == 5
        assert kwargs["headers"]["api_key_name"] == "key-name"
        assert kwargs["headers"]["api_key_val"] == "key-val"
        assert kwargs["timeout"] == cfg.relay_timeout

    def test_defaults_topic_and_user(self, cfg):
        session = _session()
        outcome = OutboundRelay(cfg, session=session).send(text="hi")
        body = session.post.call_args.kwargs["json"]
        assert outcome.topic_id == 22
        assert body["data"]["topic_id"] == 22
        assert body["data"]["user_id"] == 1

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_message_rejected(self, cfg, text):
        session = _session()
        with pytest.raises(ValidationError):
            OutboundRelay(cfg, session=session).send(topic_id=22, text=text)
        session.post.assert_not_called()

    def test_non_2xx_is_upstream_failure(self, cfg):
        session = _session(503)
        with pytest.raises(UpstreamUnavailable) as exc:
            OutboundRelay(cfg, session=session).send(topic_id=22, text="hi")
        assert exc.value.status_code == 503

    def test_redirect_is_not_success(self, cfg):
        with pytest.raises(UpstreamUnavailable):
            OutboundRelay(cfg, session=_session(302)).send(text="hi")

    def test_transport_error_not_retried(self, cfg):
        session = _session(exc=requests.ConnectionError("refused"))
        with pytest.raises(UpstreamUnavailable):
            OutboundRelay(cfg, session=session).send(topic_id=22, text="hi")
        assert session.post.call_count == 1

    def test_timeout_is_upstream_failure(self, cfg):
        session = _session(exc=requests.Timeout("slow"))
        with pytest.raises(UpstreamUnavailable):
            OutboundRelay(cfg, session=session).send(text="hi")

    def test_unconfigured_relay(self, cfg):
        cfg.webhook_url = None
        session = _session()
        with pytest.raises(UpstreamUnavailable):
            OutboundRelay(cfg, session=session).send(text="hi")
        session.post.assert_not_called()
