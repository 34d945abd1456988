"""xAI Grok chat-completions client."""

from __future__ import annotations

import logging

from modelgate.llm.providers.base import new_call_id
from modelgate.llm.providers.chat_tools import ChatToolsClient
from modelgate.llm.types import Attachment, Vendor

logger = logging.getLogger(__name__)


class GrokClient(ChatToolsClient):
    """
    Streaming client for ``api.x.ai``.

    Grok sends each tool call complete in a single chunk, so every call is
    emitted header, arguments and closing fragment at once.
    """

    vendor = Vendor.GROK
    omit_reasoning_temperature = True
    max_tokens = 10_000

    def image_part(self, image: Attachment) -> dict:
        return {
            "type": "image_url",
            "image_url": {"url": image.data_url(), "detail": "auto"},
        }

    def initial_state(self) -> None:
        return None

    def handle_frame(self, frame: dict, state: None) -> None:
        choices = frame.get("choices")
        if not choices:
            return state

        delta = choices[0].get("delta") or {}
        tool_calls = delta.get("tool_calls")
        if tool_calls:
            logger.debug("%s: %d whole tool call(s) in chunk", self.name, len(tool_calls))
            for tool_call in tool_calls:
                func = tool_call.get("function") or {}
                self._emit_whole_call(
                    tool_call.get("id") or new_call_id(),
                    func.get("name", ""),
                    func.get("arguments") or {},
                )
        elif isinstance(delta.get("content"), str):
            self._emit_content(delta["content"])
        return state
