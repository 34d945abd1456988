"""
Shared request/stream loop for every vendor client.

A client turns a ``Conversation`` into one streaming HTTP request and
re-emits the vendor's incremental response as ``Incoming`` events on its
``Publisher``.  Subclasses supply the vendor specifics: the request body,
auth headers and per-frame parsing.

Usage::

    client = OpenAIChatClient(config, catalog)
    client.set_model(descriptor)
    client.subscribe(my_listener)
    action = client.run(conversation)   # builds the request, no I/O
    action()                            # performs the exchange

One client instance serves exactly one request.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable

import httpx

from modelgate.config import GatewayConfig
from modelgate.errors import (
    ConfigurationError,
    GatewayError,
    ProviderHTTPError,
    ProviderStreamError,
    RateLimitExceeded,
    StreamCancelled,
)
from modelgate.llm.publisher import Publisher, Subscriber
from modelgate.llm.types import (
    EMPTY_ARGUMENTS,
    FUNCTION_CALL_CLOSE,
    Conversation,
    ConversationContext,
    Incoming,
    Message,
    ModelDescriptor,
    Vendor,
    function_call_header,
)
from modelgate.tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)

# Models that reject an explicit temperature (o1, o3-mini, ...).
REASONING_MODEL_RE = re.compile(r"^o\d+(-.*)?$")

DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"

# Longest uninterrupted sleep while waiting out a rate limit.
_CANCEL_POLL_SECONDS = 1.0


def is_reasoning_model(model_name: str) -> bool:
    return bool(REASONING_MODEL_RE.match(model_name))


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class PreparedRequest:
    """Everything needed to send one vendor request."""

    url: str
    headers: dict[str, str]
    body: dict


@dataclass(frozen=True)
class CallState:
    """Parse state for vendors that stream one function call at a time."""

    open: bool = False
    index: int | None = None
    has_arguments: bool = False


class StreamingClient(ABC):
    """
    Base class for vendor streaming clients.

    Parameters
    ----------
    config:
        Timeouts, retry policy and system prompt.  Defaults to
        ``GatewayConfig()``.
    tool_catalog:
        Tools advertised when the model has ``function_calling`` enabled.
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in tests.
    sleep:
        Blocking sleep used while waiting out a rate limit.
    """

    vendor: Vendor
    #: Omit ``temperature`` for reasoning-only model names.
    omit_reasoning_temperature = False

    def __init__(
        self,
        config: GatewayConfig | None = None,
        tool_catalog: ToolCatalog | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or GatewayConfig()
        self._tools = tool_catalog or ToolCatalog()
        self._transport = transport
        self._sleep = sleep
        self._publisher = Publisher()
        self._cancel_provider: Callable[[], bool] = lambda: False
        self._model: ModelDescriptor | None = None
        self._context: ConversationContext | None = None
        self._consumed = False

    # ------------------------------------------------------------------
    # Client contract
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.vendor.value

    @property
    def model(self) -> ModelDescriptor | None:
        return self._model

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    def subscribe(self, subscriber: Subscriber) -> None:
        self._publisher.subscribe(subscriber)

    def set_cancel_provider(self, predicate: Callable[[], bool]) -> None:
        """Install the cancel check, polled once per streamed line."""
        self._cancel_provider = predicate

    def set_model(self, model: ModelDescriptor) -> None:
        self._model = model

    def set_conversation_context(self, context: ConversationContext | None) -> None:
        self._context = context

    def run(self, conversation: Conversation) -> Callable[[], None]:
        """
        Prepare the vendor request and return the action that sends it.

        All validation happens here, so configuration problems raise
        ``ConfigurationError`` before any network traffic.  The returned
        action never raises for request failures; the outcome reaches the
        subscribers as a normal or exceptional close.
        """
        model = self._model
        if model is None:
            raise ConfigurationError(
                "Model not selected",
                hint="Select a model before sending a conversation.",
            )
        conversation.validate()
        if model.function_calling:
            self._tools.check()

        request = self.build_request(model, conversation.messages())
        logger.info(
            "REQUEST: vendor=%s model=%s messages=%d api_key=%s",
            self.name,
            model.model_name,
            len(conversation),
            model.masked_key(),
        )
        logger.debug("REQUEST body: %s", json.dumps(request.body)[:4000])

        def action() -> None:
            self._execute(request)

        return action

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def build_body(self, model: ModelDescriptor, messages: tuple[Message, ...]) -> dict:
        """Serialize the conversation into the vendor request body."""

    @abstractmethod
    def auth_headers(self, model: ModelDescriptor) -> dict[str, str]:
        ...

    @abstractmethod
    def handle_frame(self, frame: dict, state: Any) -> Any:
        """Emit events for one parsed frame and return the next parse state."""

    def initial_state(self) -> Any:
        return CallState()

    def finish_stream(self, state: Any) -> None:
        """Called once after the last frame; closes a dangling call."""
        if isinstance(state, CallState):
            self._close_call(state)

    def is_end_frame(self, frame: dict) -> bool:
        """Vendors that end the stream with a JSON event override this."""
        return False

    def request_url(self, model: ModelDescriptor) -> str:
        return model.api_url

    def build_request(self, model: ModelDescriptor, messages: tuple[Message, ...]) -> PreparedRequest:
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers(model))
        return PreparedRequest(
            url=self.request_url(model),
            headers=headers,
            body=self.build_body(model, messages),
        )

    # ------------------------------------------------------------------
    # Shared request-building helpers
    # ------------------------------------------------------------------

    def system_prompt(self) -> str:
        return self._config.system_prompt()

    def temperature(self, model: ModelDescriptor) -> float | None:
        """Temperature to send, or ``None`` to omit the field."""
        if self.omit_reasoning_temperature and is_reasoning_model(model.model_name):
            return None
        return model.temperature_value

    def wants_images(self, model: ModelDescriptor, message: Message) -> bool:
        return model.vision and bool(message.image_attachments())

    # ------------------------------------------------------------------
    # Event emission
    # ------------------------------------------------------------------

    def _emit(self, event: Incoming) -> None:
        self._publisher.submit(event)

    def _emit_content(self, text: str) -> None:
        if text:
            self._emit(Incoming.content(text))

    def _emit_fragment(self, fragment: str) -> None:
        self._emit(Incoming.function_call(fragment))

    def _emit_whole_call(self, call_id: str, name: str, arguments: Any) -> None:
        """Emit a call that arrived complete in one frame."""
        if isinstance(arguments, str):
            args = arguments if arguments.strip() else EMPTY_ARGUMENTS
        else:
            args = json.dumps(arguments if arguments is not None else {})
        self._emit_fragment(function_call_header(call_id, name))
        self._emit_fragment(args)
        self._emit_fragment(FUNCTION_CALL_CLOSE)

    def _open_call(
        self, state: CallState, call_id: str, name: str, index: int | None = None
    ) -> CallState:
        state = self._close_call(state)
        self._emit_fragment(function_call_header(call_id or new_call_id(), name))
        return CallState(open=True, index=index)

    def _append_arguments(self, state: CallState, fragment: str) -> CallState:
        if not state.open or not fragment:
            return state
        self._emit_fragment(fragment)
        return replace(state, has_arguments=True)

    def _close_call(self, state: CallState) -> CallState:
        if not state.open:
            return state
        if not state.has_arguments:
            self._emit_fragment(EMPTY_ARGUMENTS)
        self._emit_fragment(FUNCTION_CALL_CLOSE)
        return CallState()

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    def _is_cancelled(self) -> bool:
        return bool(self._cancel_provider())

    def _timeout(self) -> httpx.Timeout:
        http = self._config.http
        return httpx.Timeout(
            http.request_timeout_seconds, connect=http.connect_timeout_seconds
        )

    def _execute(self, request: PreparedRequest) -> None:
        if self._consumed:
            raise GatewayError(
                "Client already ran a request",
                hint="Create a new client for every request.",
            )
        self._consumed = True
        self._publisher.mark_started()

        try:
            cancelled = self._exchange(request)
        except Exception as exc:
            logger.error("%s request failed: %s", self.name, exc, exc_info=True)
            self._publisher.close_exceptionally(exc)
            return

        if cancelled:
            logger.info("%s request cancelled", self.name)
            self._publisher.close_exceptionally(StreamCancelled())
        else:
            self._publisher.close()

    def _exchange(self, request: PreparedRequest) -> bool:
        """Send the request, retrying on HTTP 429.  Returns ``True`` if cancelled."""
        max_retries = self._config.http.max_retries
        retries = 0

        with httpx.Client(timeout=self._timeout(), transport=self._transport) as client:
            while True:
                if self._is_cancelled():
                    return True

                with client.stream(
                    "POST", request.url, headers=request.headers, json=request.body
                ) as response:
                    if response.status_code == 429:
                        body = response.read().decode("utf-8", errors="replace")
                        wait = self._retry_after(response)
                        if retries >= max_retries:
                            raise RateLimitExceeded(
                                f"{self.name}: rate limited after {retries} retries",
                                provider=self.name,
                                body=body,
                                retry_after_s=wait,
                                attempts=retries + 1,
                            )
                        retries += 1
                        logger.warning(
                            "%s rate limited (%s); retry %d/%d in %.1fs",
                            self.name,
                            _vendor_error_message(body),
                            retries,
                            max_retries,
                            wait,
                        )
                    elif not response.is_success:
                        body = response.read().decode("utf-8", errors="replace")
                        raise ProviderHTTPError(
                            f"{self.name}: HTTP {response.status_code}: {body[:500]}",
                            provider=self.name,
                            status_code=response.status_code,
                            body=body,
                        )
                    else:
                        return self._consume(response)

                if self._wait(wait):
                    return True

    def _retry_after(self, response: httpx.Response) -> float:
        raw = response.headers.get("retry-after")
        if raw:
            try:
                return max(0.0, float(raw))
            except ValueError:
                logger.debug("Unparseable retry-after header: %r", raw)
        return self._config.http.default_retry_after_seconds

    def _wait(self, seconds: float) -> bool:
        """Sleep in slices, polling cancellation.  Returns ``True`` if cancelled."""
        remaining = seconds
        while remaining > 0:
            if self._is_cancelled():
                return True
            step = min(remaining, _CANCEL_POLL_SECONDS)
            self._sleep(step)
            remaining -= step
        return self._is_cancelled()

    def _consume(self, response: httpx.Response) -> bool:
        state = self.initial_state()
        for line in response.iter_lines():
            if self._is_cancelled():
                return True

            line = line.strip()
            if not line or not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX):].strip()
            if data == DONE_TOKEN:
                break

            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("%s: failed to parse frame: %s", self.name, data[:200])
                continue
            if not isinstance(frame, dict):
                logger.warning("%s: ignoring non-object frame: %s", self.name, data[:200])
                continue
            if self.is_end_frame(frame):
                break

            try:
                state = self.handle_frame(frame, state)
            except ProviderStreamError:
                raise
            except Exception:
                logger.warning(
                    "%s: error processing frame: %s", self.name, data[:200], exc_info=True
                )

        self.finish_stream(state)
        return False


def _vendor_error_message(body: str) -> str:
    """Extract ``error.type: error.message`` from a vendor error body."""
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body[:200] or "no body"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return f"{error.get('type', 'error')}: {error.get('message', '')}"
    if isinstance(error, str):
        return error
    return body[:200]
