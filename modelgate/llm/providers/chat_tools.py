"""
Request shape shared by chat endpoints that use ``tools``/``tool_calls``.

DeepSeek and Grok both speak the chat-completions dialect where function
results travel in a ``tool`` role message and assistant calls in a
``tool_calls`` array.  They differ in image parts and in how tool calls
are streamed back, which the subclasses handle.  Models without
``function_calling`` get call history as plain text.
"""

from __future__ import annotations

from abc import abstractmethod

from modelgate.llm.providers.base import StreamingClient
from modelgate.llm.types import Attachment, Message, ModelDescriptor, Role


class ChatToolsClient(StreamingClient):
    """Base for chat endpoints with ``tools`` support."""

    max_tokens: int | None = None

    def auth_headers(self, model: ModelDescriptor) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if model.api_key:
            headers["Authorization"] = f"Bearer {model.api_key}"
        return headers

    @abstractmethod
    def image_part(self, image: Attachment) -> dict:
        """One image entry of a multi-part ``content`` list."""

    def build_body(self, model: ModelDescriptor, messages: tuple[Message, ...]) -> dict:
        wire_messages = []
        system = self.system_prompt()
        if system.strip():
            wire_messages.append({"role": "system", "content": system})
        wire_messages.extend(self._to_wire(model, m) for m in messages)

        body: dict = {"model": model.model_name, "messages": wire_messages}
        temperature = self.temperature(model)
        if temperature is not None:
            body["temperature"] = temperature
        body["stream"] = True
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens

        if model.function_calling:
            tools = self._tools.chat_tools(self._context)
            if tools:
                body["tools"] = tools
                body["tool_choice"] = "auto"
        return body

    def _to_wire(self, model: ModelDescriptor, msg: Message) -> dict:
        call = msg.function_call if model.function_calling else None

        if msg.role is Role.FUNCTION and call is not None:
            return {"role": "tool", "tool_call_id": call.id, "content": msg.content}

        # A ``tool`` message needs a ``tool_call_id``; as plain text it is user input.
        role = Role.USER if msg.role is Role.FUNCTION else msg.role
        wire: dict = {"role": role.value}
        if msg.role is Role.ASSISTANT and call is not None:
            wire["tool_calls"] = [{
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments_json()},
            }]
            wire["content"] = msg.content if msg.content.strip() else ""
            return wire

        text = msg.text_content()
        if self.wants_images(model, msg):
            wire["content"] = [{"type": "text", "text": text}] + [
                self.image_part(image) for image in msg.image_attachments()
            ]
        else:
            wire["content"] = text
        return wire
