"""
Phase state machine for the OpenAI responses event stream.

The responses API streams each output item (a message, a function call or
a reasoning block) as ``response.output_item.added``, any number of
``*.delta`` events, then ``response.output_item.done``.  Each state below
handles one item kind.  States are immutable values; every transition
returns the next state, and the parse loop carries the current one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from modelgate.llm.types import (
    EMPTY_ARGUMENTS,
    FUNCTION_CALL_CLOSE,
    Incoming,
    function_call_header,
)

logger = logging.getLogger(__name__)

Emit = Callable[[Incoming], None]

ITEM_ADDED = "response.output_item.added"
ITEM_DONE = "response.output_item.done"


@dataclass(frozen=True)
class NullState:
    """No item in progress.  Ignores everything."""

    emit: Emit

    def begin(self, item: dict) -> State:
        return self

    def update(self, frame: dict) -> State:
        return self

    def finish(self, item: dict | None) -> State:
        return NullState(self.emit)


@dataclass(frozen=True)
class TextOutputState:
    emit: Emit

    def begin(self, item: dict) -> State:
        return self

    def update(self, frame: dict) -> State:
        delta = frame.get("delta")
        if isinstance(delta, str) and delta:
            self.emit(Incoming.content(delta))
        return self

    def finish(self, item: dict | None) -> State:
        return NullState(self.emit)


@dataclass(frozen=True)
class FunctionOutputState:
    """
    Streams one function call as FUNCTION_CALL fragments.

    The header goes out on ``begin``, argument deltas verbatim on
    ``update``, and ``finish`` closes the object (supplying ``{}`` when no
    arguments arrived).
    """

    emit: Emit
    has_arguments: bool = False

    def begin(self, item: dict) -> State:
        call_id = item.get("call_id") or item.get("id") or ""
        self.emit(Incoming.function_call(function_call_header(call_id, item.get("name", ""))))
        return self

    def update(self, frame: dict) -> State:
        delta = frame.get("delta")
        if not isinstance(delta, str) or not delta:
            return self
        self.emit(Incoming.function_call(delta))
        return replace(self, has_arguments=True)

    def finish(self, item: dict | None) -> State:
        if not self.has_arguments:
            self.emit(Incoming.function_call(EMPTY_ARGUMENTS))
        self.emit(Incoming.function_call(FUNCTION_CALL_CLOSE))
        return NullState(self.emit)


@dataclass(frozen=True)
class ReasoningState:
    """Internal reasoning.  Logged, never emitted."""

    emit: Emit

    def begin(self, item: dict) -> State:
        for part in item.get("summary") or ():
            if isinstance(part, dict) and "text" in part:
                logger.debug("Reasoning: %s", part["text"])
        return self

    def update(self, frame: dict) -> State:
        delta = frame.get("delta")
        if delta:
            logger.debug("Reasoning delta: %s", delta)
        return self

    def finish(self, item: dict | None) -> State:
        return NullState(self.emit)


State = NullState | TextOutputState | FunctionOutputState | ReasoningState

_ITEM_STATES: dict[str, type] = {
    "message": TextOutputState,
    "function_call": FunctionOutputState,
    "reasoning": ReasoningState,
}


def state_for_item(item: dict, emit: Emit) -> State:
    cls = _ITEM_STATES.get(item.get("type", ""), NullState)
    return cls(emit)


def next_state(state: State, frame: dict) -> State:
    """Apply one responses event to *state* and return the new state."""
    event_type = frame.get("type", "")
    if event_type == ITEM_ADDED:
        item = frame.get("item") or {}
        return state_for_item(item, state.emit).begin(item)
    if event_type == ITEM_DONE:
        state.finish(frame.get("item"))
        return NullState(state.emit)
    if "delta" in event_type:
        return state.update(frame)
    return state
