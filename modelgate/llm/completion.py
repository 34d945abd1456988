"""
Blocking, cancellable wrapper around a streaming completion client.

Code completion wants one string within a deadline, not a stream of
callbacks.  ``StreamingCompletion`` runs the client's deferred action on a
worker thread and aggregates the CONTENT events into a future.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from modelgate.errors import StreamCancelled
from modelgate.llm.publisher import Subscriber
from modelgate.llm.router import ProviderRouter
from modelgate.llm.types import Conversation, ConversationContext, Incoming, IncomingType

logger = logging.getLogger(__name__)

COMPLETION_CONTEXT = ConversationContext("completion")


class CancellationToken:
    """Thread-safe cancel flag; pass ``is_cancelled`` as a cancel provider."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class _AggregatingSubscriber(Subscriber):
    def __init__(self, settle: Callable[..., None], on_chunk: Callable[[str], None] | None) -> None:
        self._settle = settle
        self._on_chunk = on_chunk
        self._parts: list[str] = []

    def on_next(self, event: Incoming) -> None:
        if event.type is not IncomingType.CONTENT:
            return
        self._parts.append(event.payload)
        if self._on_chunk is not None:
            try:
                self._on_chunk(event.payload)
            except Exception:
                logger.warning("on_chunk callback failed", exc_info=True)

    def on_error(self, error: BaseException) -> None:
        self._settle(error=error)

    def on_complete(self) -> None:
        self._settle(result="".join(self._parts))


class CompletionHandle:
    """
    Handle to one running completion.

    ``cancel()`` stops the stream at the next line boundary; ``result()``
    waits for the aggregated text.
    """

    def __init__(self, token: CancellationToken | None = None) -> None:
        self._token = token or CancellationToken()
        self._future: Future[str] = Future()
        self._future.set_running_or_notify_cancel()
        self._lock = threading.Lock()
        self._run_future: Future | None = None

    @classmethod
    def completed(cls, text: str) -> CompletionHandle:
        handle = cls()
        handle._settle(result=text)
        return handle

    @property
    def token(self) -> CancellationToken:
        return self._token

    def _attach(self, run_future: Future) -> None:
        self._run_future = run_future

    def _settle(self, *, result: str | None = None, error: BaseException | None = None) -> None:
        with self._lock:
            if self._future.done():
                return
            if error is not None:
                self._future.set_exception(error)
            else:
                self._future.set_result(result or "")

    def cancel(self) -> None:
        """Request cancellation.  Inert once the completion has finished."""
        if self._future.done():
            return
        self._token.cancel()
        if self._run_future is not None and self._run_future.cancel():
            # Never started, so no stream will report the cancellation.
            self._settle(error=StreamCancelled())

    def done(self) -> bool:
        return self._future.done()

    def cancelled(self) -> bool:
        return self._future.done() and isinstance(self._future.exception(), StreamCancelled)

    def add_done_callback(self, fn: Callable[[CompletionHandle], None]) -> None:
        self._future.add_done_callback(lambda _f: fn(self))

    def result(self, timeout: float | None = None) -> str:
        """
        Aggregated text of the completion.

        Raises the stream's terminal error (``StreamCancelled`` if it was
        cancelled).  On timeout the completion is cancelled and
        ``TimeoutError`` is raised.
        """
        try:
            return self._future.result(timeout)
        except TimeoutError:
            self.cancel()
            raise TimeoutError(f"Completion did not finish within {timeout}s") from None


class StreamingCompletion:
    """
    Runs completion requests on a background worker.

    Parameters
    ----------
    router:
        Source of completion clients.
    executor:
        Worker pool.  Defaults to a private two-thread pool, shut down by
        ``close()``.
    """

    def __init__(
        self,
        router: ProviderRouter,
        *,
        enabled: bool = True,
        default_timeout: float = 60.0,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._router = router
        self._enabled = enabled
        self._default_timeout = default_timeout
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="modelgate-completion"
        )

    def start(
        self,
        conversation: Conversation,
        context: ConversationContext = COMPLETION_CONTEXT,
        on_chunk: Callable[[str], None] | None = None,
    ) -> CompletionHandle:
        """
        Start a completion and return its handle immediately.

        Configuration errors (no completion model, bad tools) raise here,
        before anything is scheduled.
        """
        if not self._enabled:
            logger.debug("Completion disabled; returning empty result")
            return CompletionHandle.completed("")

        handle = CompletionHandle()
        client = self._router.completion_client(context)
        client.set_cancel_provider(handle.token.is_cancelled)
        client.subscribe(_AggregatingSubscriber(handle._settle, on_chunk))
        action = client.run(conversation)
        handle._attach(self._executor.submit(action))
        return handle

    def complete(
        self,
        conversation: Conversation,
        timeout: float | None = None,
        context: ConversationContext = COMPLETION_CONTEXT,
        on_chunk: Callable[[str], None] | None = None,
    ) -> str:
        """Run a completion and block for its text, cancelling on timeout."""
        handle = self.start(conversation, context, on_chunk)
        return handle.result(self._default_timeout if timeout is None else timeout)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> StreamingCompletion:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
