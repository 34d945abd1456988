"""Google Gemini ``streamGenerateContent`` client."""

from __future__ import annotations

import logging

from modelgate.llm.providers.base import StreamingClient, new_call_id
from modelgate.llm.types import Message, ModelDescriptor, Role, Vendor

logger = logging.getLogger(__name__)

_ROLE_MAP = {
    Role.USER: "user",
    Role.ASSISTANT: "model",
    Role.SYSTEM: "user",
    Role.FUNCTION: "function",
}


class GeminiClient(StreamingClient):
    """
    Streaming client for the Gemini generative-language API.

    Gemini has no system role, so the system prompt is sent as a leading
    user message.  Function calls arrive whole in a single part.
    """

    vendor = Vendor.GEMINI
    omit_reasoning_temperature = True

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def auth_headers(self, model: ModelDescriptor) -> dict[str, str]:
        return {"x-goog-api-key": model.api_key}

    def request_url(self, model: ModelDescriptor) -> str:
        url = model.api_url.rstrip("/")
        if "/models/" not in url:
            if not url.endswith("/models"):
                url += "/models"
            url = f"{url}/{model.model_name}"
        return f"{url}:streamGenerateContent?alt=sse"

    def build_body(self, model: ModelDescriptor, messages: tuple[Message, ...]) -> dict:
        contents: list[dict] = []
        system = self.system_prompt()
        if system.strip():
            contents.append({"role": "user", "parts": [{"text": system}]})
        contents.extend(self._to_wire(model, m) for m in messages if not m.is_empty())

        body: dict = {"contents": contents}
        temperature = self.temperature(model)
        if temperature is not None:
            body["generationConfig"] = {"temperature": temperature}

        if model.function_calling:
            declarations = self._tools.gemini_declarations(self._context)
            if declarations:
                body["tools"] = [{"functionDeclarations": declarations}]
                body["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}
        return body

    def _to_wire(self, model: ModelDescriptor, msg: Message) -> dict:
        role = _ROLE_MAP[msg.role]
        # Without function calling, call history goes out as plain text.
        call = msg.function_call if model.function_calling else None

        if call is not None and msg.role is Role.FUNCTION:
            return {
                "role": role,
                "parts": [{
                    "functionResponse": {
                        "name": call.name,
                        "response": {"result": msg.content},
                    }
                }],
            }
        if call is not None and msg.role is Role.ASSISTANT:
            parts: list[dict] = []
            if msg.content.strip():
                parts.append({"text": msg.content})
            parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
            return {"role": role, "parts": parts}

        parts = [{"text": msg.text_content()}]
        if self.wants_images(model, msg):
            for image in msg.image_attachments():
                parts.append({
                    "inline_data": {
                        "mime_type": image.media_type,
                        "data": image.to_base64(),
                    }
                })
        return {"role": role, "parts": parts}

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def handle_frame(self, frame: dict, state: None) -> None:
        candidates = frame.get("candidates")
        if not candidates:
            return state

        content = candidates[0].get("content") or {}
        for part in content.get("parts") or ():
            if "text" in part:
                self._emit_content(part["text"])
            if "functionCall" in part:
                call = part["functionCall"]
                logger.debug("%s: function call %s received whole", self.name, call.get("name"))
                self._emit_whole_call(
                    call.get("id") or new_call_id(),
                    call.get("name", ""),
                    call.get("args") or {},
                )
        return state

    def initial_state(self) -> None:
        return None
