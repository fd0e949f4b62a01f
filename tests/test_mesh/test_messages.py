"""Tests for the gossip envelope and the dedup cache."""

from __future__ import annotations

import pytest

from offline_pay.errors.mesh_errors import MalformedMessage
from offline_pay.mesh.messages import GossipMessage, MessageType
from offline_pay.mesh.seen import SeenCache


def _raw(**overrides):
    raw = {
        "type": "PING",
        "sender": "peer-a",
        "timestamp": 1000,
        "messageId": "m-1",
        "ttl": 3,
    }
    raw.update(overrides)
    return raw


# ---------------------------------------------------------------------------
# GossipMessage
# ---------------------------------------------------------------------------


class TestGossipMessage:
    def test_to_dict_camel_case(self):
        msg = GossipMessage(type=MessageType.TRANSACTION, sender="a", ttl=5, data={"x": 1})
        wire = msg.to_dict()
        assert wire["messageId"] == msg.message_id
        assert wire["type"] == "TRANSACTION"
        assert wire["ttl"] == 5
        assert wire["data"] == {"x": 1}

    def test_from_dict(self):
        msg = GossipMessage.from_dict(_raw(data={"peerId": "a"}))
        assert msg.type == MessageType.PING
        assert msg.message_id == "m-1"
        assert msg.ttl == 3
        assert msg.data == {"peerId": "a"}

    def test_missing_ttl_defaults_to_zero(self):
        raw = _raw()
        del raw["ttl"]
        assert GossipMessage.from_dict(raw).ttl == 0

    def test_forwarded_decrements_only_ttl(self):
        msg = GossipMessage.from_dict(_raw())
        fwd = msg.forwarded()
        assert fwd.ttl == 2
        assert fwd.message_id == msg.message_id
        assert fwd.sender == msg.sender

    def test_fresh_ids(self):
        a = GossipMessage(type=MessageType.PING, sender="x")
        b = GossipMessage(type=MessageType.PING, sender="x")
        assert a.message_id != b.message_id

    @pytest.mark.parametrize(
        "overrides",
        [
            {"type": "GOSSIP"},
            {"type": None},
            {"sender": ""},
            {"sender": 5},
            {"messageId": None},
            {"timestamp": "now"},
            {"timestamp": True},
            {"ttl": "5"},
        ],
    )
    def test_malformed(self, overrides):
        with pytest.raises(MalformedMessage):
            GossipMessage.from_dict(_raw(**overrides))

    @pytest.mark.parametrize("raw", [None, "text", 42, ["a"]])
    def test_not_an_object(self, raw):
        with pytest.raises(MalformedMessage):
            GossipMessage.from_dict(raw)


# ---------------------------------------------------------------------------
# SeenCache
# ---------------------------------------------------------------------------


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestSeenCache:
    def test_add_reports_novelty(self):
        cache = SeenCache()
        assert cache.add("a") is True
        assert cache.add("a") is False
        assert "a" in cache
        assert len(cache) == 1

    def test_prune_by_age(self):
        clock = _Clock()
        cache = SeenCache(window=60, clock=clock)
        cache.add("old")
        clock.now = 30
        cache.add("new")
        clock.now = 61
        assert cache.prune() == 1
        assert "old" not in cache
        assert "new" in cache

    def test_max_entries_evicts_oldest(self):
        cache = SeenCache(max_entries=2)
        for key in ("a", "b", "c"):
            cache.add(key)
        assert "a" not in cache
        assert len(cache) == 2

    def test_clear(self):
        cache = SeenCache()
        cache.add("a")
        cache.clear()
        assert len(cache) == 0
