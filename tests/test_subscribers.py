"""Tests for the stock listeners in modelgate.llm.subscribers."""

from __future__ import annotations

import logging

from modelgate.errors import StreamCancelled
from modelgate.llm.publisher import Publisher
from modelgate.llm.subscribers import (
    CallbackSubscriber,
    FunctionCallSubscriber,
    LoggingSubscriber,
)
from modelgate.llm.types import (
    FUNCTION_CALL_CLOSE,
    ConversationContext,
    Incoming,
    function_call_header,
)


def publish_call(pub: Publisher, call_id: str, name: str, args: str = "{}") -> None:
    pub.submit(Incoming.function_call(function_call_header(call_id, name)))
    pub.submit(Incoming.function_call(args))
    pub.submit(Incoming.function_call(FUNCTION_CALL_CLOSE))


class TestCallbackSubscriber:
    def test_forwards_content_only(self):
        received = []
        pub = Publisher()
        pub.subscribe(CallbackSubscriber(received.append))
        pub.submit(Incoming.content("Hello "))
        publish_call(pub, "c", "f")
        pub.submit(Incoming.content("world"))
        pub.close()
        assert received == ["Hello ", "world"]

    def test_cancellation_not_reported_by_default(self):
        errors = []
        sub = CallbackSubscriber(lambda _t: None, on_error=errors.append)
        sub.on_error(StreamCancelled())
        assert errors == []

    def test_cancellation_reported_when_requested(self):
        errors = []
        sub = CallbackSubscriber(lambda _t: None, on_error=errors.append, report_cancellation=True)
        sub.on_error(StreamCancelled())
        assert len(errors) == 1

    def test_real_errors_are_reported(self):
        errors = []
        done = []
        sub = CallbackSubscriber(lambda _t: None, on_complete=lambda: done.append(1), on_error=errors.append)
        sub.on_error(RuntimeError("x"))
        assert len(errors) == 1
        assert done == []


class TestFunctionCallSubscriber:
    def test_dispatches_on_complete(self):
        dispatched = []
        pub = Publisher()
        pub.subscribe(FunctionCallSubscriber(dispatched.append))
        publish_call(pub, "call_1", "fs__read", '{"path": "a.txt"}')
        assert dispatched == []
        pub.close()
        assert len(dispatched) == 1
        assert dispatched[0].arguments == {"path": "a.txt"}

    def test_disallowed_tool_is_skipped(self):
        dispatched = []
        ctx = ConversationContext("completion", frozenset({"fs__read"}))
        pub = Publisher()
        pub.subscribe(FunctionCallSubscriber(dispatched.append, ctx))
        publish_call(pub, "c1", "fs__write")
        publish_call(pub, "c2", "fs__read")
        pub.close()
        assert [c.name for c in dispatched] == ["fs__read"]

    def test_error_discards_buffer(self):
        dispatched = []
        sub = FunctionCallSubscriber(dispatched.append)
        pub = Publisher()
        pub.subscribe(sub)
        publish_call(pub, "c", "f")
        pub.close_exceptionally(StreamCancelled())
        assert dispatched == []
        assert not sub.assembler.pending


class TestLoggingSubscriber:
    def test_logs_summary(self, caplog):
        sub = LoggingSubscriber(label="t")
        pub = Publisher()
        pub.subscribe(sub)
        with caplog.at_level(logging.INFO, logger="modelgate.llm.subscribers"):
            pub.submit(Incoming.content("abc"))
            pub.close()
        assert sub.chars == 3
        assert "t complete: 3 chars" in caplog.text

    def test_cancellation_logged_at_info(self, caplog):
        sub = LoggingSubscriber(label="t")
        with caplog.at_level(logging.INFO, logger="modelgate.llm.subscribers"):
            sub.on_error(StreamCancelled())
        assert "t cancelled" in caplog.text
