"""Tests for the blocking completion wrapper."""

from __future__ import annotations

import threading

import httpx
import pytest

from modelgate.config import GatewayConfig
from modelgate.errors import ConfigurationError, ProviderHTTPError, StreamCancelled
from modelgate.llm.completion import CompletionHandle, StreamingCompletion
from modelgate.llm.router import ProviderRouter
from modelgate.llm.types import Conversation

from tests.mock_vendors import MockVendor, chat_delta, make_model, sse_body, sse_response


def make_router(transport: httpx.BaseTransport) -> ProviderRouter:
    cfg = GatewayConfig(models=[make_model(uid="comp")], completion_model="comp")
    return ProviderRouter(cfg, transport=transport)


def prompt(text: str = "def add(a, b):") -> Conversation:
    conv = Conversation()
    conv.add_user(text)
    return conv


class GatedStream:
    """Streams one frame, then holds the connection open until released."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.started = threading.Event()

    def _chunks(self):
        yield sse_body(chat_delta("    return"), done=False)
        self.started.set()
        self.release.wait(5)
        yield sse_body(chat_delta(" a + b"))

    def handler(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=self._chunks())

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class TestStreamingCompletion:
    def test_aggregates_content(self):
        vendor = MockVendor([sse_response(chat_delta("    return"), chat_delta(" a + b"))])
        with StreamingCompletion(make_router(vendor.transport)) as completion:
            assert completion.complete(prompt(), timeout=5) == "    return a + b"

    def test_on_chunk_sees_each_fragment(self):
        vendor = MockVendor([sse_response(chat_delta("a"), chat_delta("b"))])
        chunks = []
        with StreamingCompletion(make_router(vendor.transport)) as completion:
            completion.complete(prompt(), timeout=5, on_chunk=chunks.append)
        assert chunks == ["a", "b"]

    def test_failing_on_chunk_does_not_break_result(self):
        vendor = MockVendor([sse_response(chat_delta("ok"))])

        def boom(_text):
            raise RuntimeError("ui gone")

        with StreamingCompletion(make_router(vendor.transport)) as completion:
            assert completion.complete(prompt(), timeout=5, on_chunk=boom) == "ok"

    def test_http_error_propagates(self):
        vendor = MockVendor([httpx.Response(500, text="boom")])
        with StreamingCompletion(make_router(vendor.transport)) as completion:
            with pytest.raises(ProviderHTTPError):
                completion.complete(prompt(), timeout=5)

    def test_disabled_returns_empty(self):
        vendor = MockVendor()
        with StreamingCompletion(make_router(vendor.transport), enabled=False) as completion:
            assert completion.complete(prompt()) == ""
        assert vendor.requests == []

    def test_missing_model_raises_before_scheduling(self):
        with StreamingCompletion(ProviderRouter()) as completion:
            with pytest.raises(ConfigurationError):
                completion.start(prompt())

    def test_timeout_cancels_stream(self):
        gate = GatedStream()
        with StreamingCompletion(make_router(gate.transport)) as completion:
            handle = completion.start(prompt())
            settled = threading.Event()
            handle.add_done_callback(lambda _h: settled.set())

            with pytest.raises(TimeoutError):
                handle.result(timeout=0.2)
            assert handle.token.is_cancelled()

            gate.release.set()
            assert settled.wait(5)
            assert handle.cancelled()
            with pytest.raises(StreamCancelled):
                handle.result(0)

    def test_cancel_mid_stream(self):
        gate = GatedStream()
        with StreamingCompletion(make_router(gate.transport)) as completion:
            handle = completion.start(prompt())
            assert gate.started.wait(5)
            handle.cancel()
            gate.release.set()
            with pytest.raises(StreamCancelled):
                handle.result(5)


class TestCompletionHandle:
    def test_completed(self):
        handle = CompletionHandle.completed("x")
        assert handle.done()
        assert handle.result() == "x"

    def test_cancel_after_done_is_inert(self):
        handle = CompletionHandle.completed("x")
        handle.cancel()
        assert not handle.token.is_cancelled()
        assert not handle.cancelled()

    def test_first_settle_wins(self):
        handle = CompletionHandle()
        handle._settle(result="first")
        handle._settle(error=RuntimeError("late"))
        assert handle.result() == "first"
