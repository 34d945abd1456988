"""
OpenAI chat-completions client -- the default for unrecognised endpoints.

Works with any server speaking ``/v1/chat/completions`` with SSE
streaming.  Functions are advertised through the legacy ``functions``
field; streamed ``tool_calls`` deltas from compatible servers are also
understood.
"""

from __future__ import annotations

import logging

from modelgate.llm.providers.base import CallState, StreamingClient
from modelgate.llm.types import Message, ModelDescriptor, Role, Vendor

logger = logging.getLogger(__name__)

_CALL_FINISH_REASONS = ("function_call", "tool_calls")


class OpenAIChatClient(StreamingClient):
    """Streaming client for OpenAI-compatible chat completions."""

    vendor = Vendor.OPENAI
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
        wire_messages = []
        system = self.system_prompt()
        if system.strip():
            wire_messages.append({"role": "system", "content": system})
        wire_messages.extend(self._to_wire(model, m) for m in messages)

        body: dict = {"model": model.model_name, "messages": wire_messages}
        if model.function_calling:
            functions = self._tools.openai_functions(self._context)
            if functions:
                body["functions"] = functions
        temperature = self.temperature(model)
        if temperature is not None:
            body["temperature"] = temperature
        body["stream"] = True
        return body

    def _to_wire(self, model: ModelDescriptor, msg: Message) -> dict:
        # The chat API has no role for function results; they go back as user.
        role = Role.USER if msg.role is Role.FUNCTION else msg.role
        wire: dict = {"role": role.value}

        if model.function_calling and msg.function_call is not None:
            if msg.role is Role.FUNCTION:
                wire["name"] = msg.function_call.name
            elif msg.role is Role.ASSISTANT:
                wire["function_call"] = {
                    "name": msg.function_call.name,
                    "arguments": msg.function_call.arguments_json(),
                }

        text = msg.text_content()
        if self.wants_images(model, msg):
            content: list[dict] = [{"type": "text", "text": text}]
            for image in msg.image_attachments():
                content.append({
                    "type": "image_url",
                    "image_url": {"url": image.data_url()},
                })
            wire["content"] = content
        else:
            wire["content"] = text
        return wire

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def handle_frame(self, frame: dict, state: CallState) -> CallState:
        choices = frame.get("choices")
        if not choices:
            return state

        choice = choices[0]
        delta = choice.get("delta") or {}

        content = delta.get("content")
        if isinstance(content, str):
            self._emit_content(content)

        function_call = delta.get("function_call")
        if function_call:
            if function_call.get("name"):
                state = self._open_call(state, function_call.get("id", ""), function_call["name"])
            state = self._append_arguments(state, function_call.get("arguments") or "")

        for tool_call in delta.get("tool_calls") or ():
            index = tool_call.get("index", 0)
            func = tool_call.get("function") or {}
            if func.get("name") and (not state.open or state.index != index):
                state = self._open_call(state, tool_call.get("id", ""), func["name"], index)
            state = self._append_arguments(state, func.get("arguments") or "")

        if choice.get("finish_reason") in _CALL_FINISH_REASONS:
            state = self._close_call(state)
        return state
