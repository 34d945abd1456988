"""Stock listeners: logging, UI callbacks and function-call dispatch."""

from __future__ import annotations

import logging
from typing import Callable

from modelgate.errors import StreamCancelled
from modelgate.llm.function_call_assembler import FunctionCallAssembler
from modelgate.llm.publisher import Subscriber
from modelgate.llm.types import ConversationContext, FunctionCall, Incoming, IncomingType

logger = logging.getLogger(__name__)


class LoggingSubscriber(Subscriber):
    """Logs the stream; never touches the UI."""

    def __init__(self, log: logging.Logger | None = None, label: str = "stream") -> None:
        self._log = log or logger
        self._label = label
        self.chars = 0
        self.fragments = 0

    def on_next(self, event: Incoming) -> None:
        if event.type is IncomingType.CONTENT:
            self.chars += len(event.payload)
            self._log.debug("%s content: %r", self._label, event.payload)
        else:
            self.fragments += 1
            self._log.debug("%s function_call fragment: %s", self._label, event.payload)

    def on_error(self, error: BaseException) -> None:
        if isinstance(error, StreamCancelled):
            self._log.info("%s cancelled after %d chars", self._label, self.chars)
        else:
            self._log.warning("%s failed: %s", self._label, error)

    def on_complete(self) -> None:
        self._log.info(
            "%s complete: %d chars, %d function_call fragments",
            self._label,
            self.chars,
            self.fragments,
        )


class CallbackSubscriber(Subscriber):
    """
    Forwards CONTENT text to a UI append callback.

    Cancellation is not reported to ``on_error`` unless
    ``report_cancellation`` is set.
    """

    def __init__(
        self,
        on_content: Callable[[str], None],
        on_complete: Callable[[], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        *,
        report_cancellation: bool = False,
    ) -> None:
        self._on_content = on_content
        self._on_complete = on_complete
        self._on_error = on_error
        self._report_cancellation = report_cancellation

    def on_next(self, event: Incoming) -> None:
        if event.type is IncomingType.CONTENT and event.payload:
            self._on_content(event.payload)

    def on_error(self, error: BaseException) -> None:
        if isinstance(error, StreamCancelled) and not self._report_cancellation:
            return
        if self._on_error is not None:
            self._on_error(error)

    def on_complete(self) -> None:
        if self._on_complete is not None:
            self._on_complete()


class FunctionCallSubscriber(Subscriber):
    """
    Buffers FUNCTION_CALL fragments and dispatches finished calls.

    Calls are decoded once the stream completes.  Calls to tools the
    context does not allow are skipped.  A failed or cancelled stream
    discards whatever was buffered.
    """

    def __init__(
        self,
        dispatch: Callable[[FunctionCall], None],
        context: ConversationContext | None = None,
    ) -> None:
        self._dispatch = dispatch
        self._context = context
        self.assembler = FunctionCallAssembler()
        self.dispatched: list[FunctionCall] = []

    def on_next(self, event: Incoming) -> None:
        if event.type is IncomingType.FUNCTION_CALL:
            self.assembler.feed(event.payload)

    def on_error(self, error: BaseException) -> None:
        if self.assembler.pending:
            logger.info("Discarding buffered function call after stream error")
        self.assembler.reset()

    def on_complete(self) -> None:
        calls = self.assembler.flush()
        if self.assembler.errors:
            logger.warning("Function-call assembly errors: %s", self.assembler.errors)

        for call in calls:
            if self._context is not None and not self._context.is_tool_allowed(call.name):
                logger.warning(
                    "Function %s not allowed in context %s; skipping",
                    call.name,
                    self._context.context_id,
                )
                continue
            self.dispatched.append(call)
            self._dispatch(call)
