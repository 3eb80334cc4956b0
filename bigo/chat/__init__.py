# Chat bridge: user message out by webhook, AI reply back by webhook, found by polling
#
# Components:
#   relay.py      - OutboundRelay (fire-and-forget POST to the AI service)
#   normalizer.py - ResponseNormalizer (ordered payload shape matchers)
#   replies.py    - ReplyRecord + ResponseStore (per-topic append-only logs)
#   poller.py     - PollController / PollSession (bounded, cancellable polling)
#   client.py     - BoardClient (HTTP access to a running board server)
#   errors.py     - ValidationError, UpstreamUnavailable, ParseFailure
