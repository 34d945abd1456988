"""
OpenAI responses-API client (``/v1/responses``).

The responses stream is a sequence of typed events; the output item being
assembled is tracked by the phase state machine in
``modelgate.llm.responses_state``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from modelgate.errors import ProviderStreamError
from modelgate.llm.providers.base import StreamingClient
from modelgate.llm.responses_state import NullState, State, next_state
from modelgate.llm.types import Message, ModelDescriptor, Role, Vendor

logger = logging.getLogger(__name__)

_FATAL_EVENTS = ("error", "response.failed")


def function_call_output(call_id: str, result: Any) -> dict:
    """Input item that returns a function result to the model.

    String results are sent verbatim, anything else JSON-encoded.
    """
    output = result if isinstance(result, str) else json.dumps(result)
    return {"type": "function_call_output", "call_id": call_id, "output": output}


class OpenAIResponsesClient(StreamingClient):
    """Streaming client for the OpenAI responses API."""

    vendor = Vendor.OPENAI_RESPONSES
    omit_reasoning_temperature = True

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def auth_headers(self, model: ModelDescriptor) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if model.api_key:
            headers["Authorization"] = f"Bearer {model.api_key}"
        return headers

    def build_body(self, model: ModelDescriptor, messages: tuple[Message, ...]) -> dict:
        body: dict = {"model": model.model_name}
        system = self.system_prompt()
        if system.strip():
            body["instructions"] = system

        items: list[dict] = []
        for msg in messages:
            items.extend(self._to_items(model, msg))
        body["input"] = items

        if model.function_calling:
            tools = self._tools.responses_tools(self._context)
            if tools:
                body["tools"] = tools
                body["tool_choice"] = "auto"
                body["parallel_tool_calls"] = False

        temperature = self.temperature(model)
        if temperature is not None:
            body["temperature"] = temperature
        body["stream"] = True
        body["store"] = False
        return body

    def _to_items(self, model: ModelDescriptor, msg: Message) -> list[dict]:
        call = msg.function_call
        if msg.role is Role.FUNCTION and call is not None:
            return [function_call_output(call.id, msg.content)]

        items = []
        if msg.role is not Role.ASSISTANT or call is None or msg.content.strip():
            items.append({"role": msg.role.value, "content": self._content(model, msg)})
        if msg.role is Role.ASSISTANT and call is not None:
            items.append({
                "type": "function_call",
                "call_id": call.id,
                "name": call.name,
                "arguments": call.arguments_json(),
            })
        return items

    def _content(self, model: ModelDescriptor, msg: Message) -> Any:
        text = msg.text_content()
        if not self.wants_images(model, msg):
            return text
        parts: list[dict] = [{"type": "input_text", "text": text}]
        for image in msg.image_attachments():
            parts.append({"type": "input_image", "image_url": image.data_url()})
        return parts

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def initial_state(self) -> State:
        return NullState(self._emit)

    def handle_frame(self, frame: dict, state: State) -> State:
        event_type = frame.get("type", "")
        if event_type in _FATAL_EVENTS:
            error = frame.get("error") or (frame.get("response") or {}).get("error")
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderStreamError(
                f"{self.name}: {message or event_type}", provider=self.name
            )
        return next_state(state, frame)

    def finish_stream(self, state: State) -> None:
        if not isinstance(state, NullState):
            logger.debug("%s: stream ended inside an output item", self.name)
            state.finish(None)
