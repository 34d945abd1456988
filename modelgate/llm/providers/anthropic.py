"""Anthropic messages-API client."""

from __future__ import annotations

import logging

from modelgate.errors import ProviderStreamError
from modelgate.llm.providers.base import CallState, StreamingClient
from modelgate.llm.types import Message, ModelDescriptor, Role, Vendor

logger = logging.getLogger(__name__)


class AnthropicClient(StreamingClient):
    """
    Streaming client for ``/v1/messages``.

    Function calls map to ``tool_use`` blocks and their results to
    ``tool_result`` blocks inside a user message.  The stream ends with a
    ``message_stop`` event rather than a ``[DONE]`` token.
    """

    vendor = Vendor.ANTHROPIC

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def auth_headers(self, model: ModelDescriptor) -> dict[str, str]:
        return {
            "x-api-key": model.api_key,
            "anthropic-version": self._config.anthropic.version,
        }

    def build_body(self, model: ModelDescriptor, messages: tuple[Message, ...]) -> dict:
        body: dict = {}
        system = self.system_prompt()
        if system.strip():
            body["system"] = system
        body["model"] = model.model_name
        body["messages"] = [self._to_wire(model, m) for m in messages if not m.is_empty()]
        body["temperature"] = model.temperature_value
        body["stream"] = True
        body["max_tokens"] = self._config.anthropic.max_tokens

        if model.function_calling:
            tools = self._tools.anthropic_tools(self._context)
            if tools:
                body["tools"] = tools
        return body

    def _to_wire(self, model: ModelDescriptor, msg: Message) -> dict:
        role = "assistant" if msg.role is Role.ASSISTANT else "user"
        call = msg.function_call

        if call is not None and model.function_calling:
            if msg.role is Role.FUNCTION:
                return {
                    "role": role,
                    "content": [{
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": [{"type": "text", "text": msg.content}],
                        "is_error": False,
                    }],
                }
            if msg.role is Role.ASSISTANT:
                content: list[dict] = []
                if msg.content.strip():
                    content.append({"type": "text", "text": msg.content})
                content.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
                return {"role": role, "content": content}

        text = msg.text_content()
        if not self.wants_images(model, msg):
            return {"role": role, "content": text}

        parts: list[dict] = [{"type": "text", "text": text}]
        for image in msg.image_attachments():
            parts.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.media_type,
                    "data": image.to_base64(),
                },
            })
        return {"role": role, "content": parts}

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def is_end_frame(self, frame: dict) -> bool:
        return frame.get("type") == "message_stop"

    def handle_frame(self, frame: dict, state: CallState) -> CallState:
        event_type = frame.get("type", "")

        if event_type == "ping":
            return state

        if event_type == "error":
            error = frame.get("error") or {}
            raise ProviderStreamError(
                f"{self.name}: {error.get('type', 'error')}: {error.get('message', '')}",
                provider=self.name,
            )

        if event_type == "content_block_start":
            block = frame.get("content_block") or {}
            if block.get("type") == "tool_use":
                return self._open_call(
                    state, block.get("id", ""), block.get("name", ""), frame.get("index")
                )
            if block.get("type") == "text":
                self._emit_content(block.get("text", ""))
            return state

        if event_type == "content_block_delta":
            delta = frame.get("delta") or {}
            if delta.get("type") == "text_delta":
                self._emit_content(delta.get("text", ""))
            elif delta.get("type") == "input_json_delta":
                return self._append_arguments(state, delta.get("partial_json", ""))
            return state

        if event_type == "content_block_stop":
            if state.open and state.index == frame.get("index", state.index):
                return self._close_call(state)
        return state
