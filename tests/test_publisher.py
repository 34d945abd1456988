"""Tests for modelgate.llm.publisher.Publisher."""

from __future__ import annotations

import pytest

from modelgate.errors import LateSubscriptionError, PublisherClosedError, StreamCancelled
from modelgate.llm.publisher import Publisher, Subscriber
from modelgate.llm.types import Incoming

from tests.mock_vendors import RecordingSubscriber


class ExplodingSubscriber(Subscriber):
    def on_next(self, event):
        raise RuntimeError("boom")


class TestDelivery:
    """Events fan out to every subscriber in order."""

    def test_every_subscriber_sees_every_event_in_order(self):
        pub = Publisher()
        a, b = RecordingSubscriber(), RecordingSubscriber()
        pub.subscribe(a)
        pub.subscribe(b)

        for text in ("one", "two", "three"):
            pub.submit(Incoming.content(text))
        pub.close()

        assert [e.payload for e in a.events] == ["one", "two", "three"]
        assert a.events == b.events
        assert a.completed and b.completed

    def test_failing_subscriber_is_dropped_without_affecting_others(self):
        pub = Publisher()
        good = RecordingSubscriber()
        pub.subscribe(ExplodingSubscriber())
        pub.subscribe(good)

        pub.submit(Incoming.content("a"))
        pub.submit(Incoming.content("b"))
        pub.close()

        assert good.text == "ab"
        assert pub.subscriber_count == 1


class TestTermination:
    """close / close_exceptionally semantics."""

    def test_close_is_idempotent(self):
        pub = Publisher()
        sub = RecordingSubscriber()
        pub.subscribe(sub)
        pub.close()
        pub.close()
        assert sub.completed
        assert pub.is_closed

    def test_first_terminal_signal_wins(self):
        pub = Publisher()
        sub = RecordingSubscriber()
        pub.subscribe(sub)

        pub.close_exceptionally(ValueError("bad"))
        pub.close()

        assert isinstance(sub.error, ValueError)
        assert not sub.completed
        assert isinstance(pub.error, ValueError)

    def test_cancellation_is_distinguishable(self):
        pub = Publisher()
        pub.close_exceptionally(StreamCancelled())
        assert pub.is_cancelled

    def test_submit_after_close_raises(self):
        pub = Publisher()
        pub.close()
        with pytest.raises(PublisherClosedError):
            pub.submit(Incoming.content("late"))


class TestLateSubscription:
    """Subscribers must register before delivery starts."""

    def test_subscribe_after_first_event_raises(self):
        pub = Publisher()
        pub.subscribe(RecordingSubscriber())
        pub.submit(Incoming.content("x"))
        with pytest.raises(LateSubscriptionError):
            pub.subscribe(RecordingSubscriber())

    def test_subscribe_after_start_marker_raises(self):
        pub = Publisher()
        pub.mark_started()
        with pytest.raises(LateSubscriptionError):
            pub.subscribe(RecordingSubscriber())

    def test_subscribe_after_close_raises(self):
        pub = Publisher()
        pub.close()
        with pytest.raises(LateSubscriptionError):
            pub.subscribe(RecordingSubscriber())
