"""
Mock vendor endpoints for testing.

Serves canned SSE bodies through ``httpx.MockTransport`` so tests can drive
every client end to end without hitting real APIs.
"""

from __future__ import annotations

import json

import httpx

from modelgate.llm.publisher import Subscriber
from modelgate.llm.types import Incoming, IncomingType, ModelDescriptor, Vendor


def sse_body(*frames, done: bool = True) -> bytes:
    """
    Build an SSE body.

    Dict frames are JSON-encoded; string frames are sent as-is after
    ``data: ``.  ``done`` appends the ``[DONE]`` terminator.
    """
    lines = []
    for frame in frames:
        data = json.dumps(frame) if isinstance(frame, dict) else frame
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def sse_response(*frames, done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(*frames, done=done),
        headers={"content-type": "text/event-stream"},
    )


def chat_delta(content: str | None = None, finish_reason: str | None = None, **delta) -> dict:
    """One chat-completions chunk."""
    if content is not None:
        delta["content"] = content
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


class MockVendor:
    """
    A fake vendor endpoint.

    Usage::

        vendor = MockVendor([sse_response(chat_delta("Hi"))])
        client = OpenAIChatClient(transport=vendor.transport)

    Parameters
    ----------
    responses:
        Returned in order; the last one repeats once the list is used up.
    """

    def __init__(self, responses: list[httpx.Response] | None = None) -> None:
        self._responses = list(responses or [sse_response()])
        self.requests: list[httpx.Request] = []

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            template = self._responses.pop(0)
        else:
            template = self._responses[0]
        # A fresh response per request; httpx responses are single-use.
        return httpx.Response(
            template.status_code,
            headers=template.headers,
            content=template.content,
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


class RecordingSubscriber(Subscriber):
    """Records everything a publisher delivers."""

    def __init__(self) -> None:
        self.events: list[Incoming] = []
        self.completed = False
        self.error: BaseException | None = None

    def on_next(self, event: Incoming) -> None:
        self.events.append(event)

    def on_error(self, error: BaseException) -> None:
        self.error = error

    def on_complete(self) -> None:
        self.completed = True

    @property
    def text(self) -> str:
        return "".join(e.payload for e in self.events if e.type is IncomingType.CONTENT)

    @property
    def fragments(self) -> str:
        return "".join(e.payload for e in self.events if e.type is IncomingType.FUNCTION_CALL)


class FakeSleep:
    """Stands in for ``time.sleep``; records the requested durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


def make_model(
    url: str = "https://api.openai.com/v1/chat/completions",
    *,
    uid: str = "test-model",
    model_name: str = "gpt-4o",
    vendor: Vendor | None = None,
    **kwargs,
) -> ModelDescriptor:
    return ModelDescriptor(
        uid=uid,
        api_url=url,
        api_key=kwargs.pop("api_key", "sk-test-key"),
        model_name=model_name,
        vendor=vendor,
        **kwargs,
    )
