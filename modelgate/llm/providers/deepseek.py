"""DeepSeek chat-completions client."""

from __future__ import annotations

import logging

from modelgate.llm.providers.base import CallState
from modelgate.llm.providers.chat_tools import ChatToolsClient
from modelgate.llm.types import Attachment, Vendor

logger = logging.getLogger(__name__)


class DeepSeekClient(ChatToolsClient):
    """
    Streaming client for DeepSeek.

    Tool calls stream incrementally: a delta carrying ``id`` and a function
    ``name`` opens a call, later deltas carry argument text.  Reasoning
    models also stream ``reasoning_content``, which is logged only.
    """

    vendor = Vendor.DEEPSEEK
    max_tokens = 4096

    def image_part(self, image: Attachment) -> dict:
        return {"type": "image", "image_url": {"url": image.data_url()}}

    def handle_frame(self, frame: dict, state: CallState) -> CallState:
        choices = frame.get("choices")
        if not choices:
            return state

        choice = choices[0]
        delta = choice.get("delta") or {}

        reasoning = delta.get("reasoning_content")
        if reasoning:
            logger.debug("Reasoning: %s", reasoning)

        content = delta.get("content")
        if isinstance(content, str):
            self._emit_content(content)

        for tool_call in delta.get("tool_calls") or ():
            func = tool_call.get("function") or {}
            if tool_call.get("id") and func.get("name"):
                state = self._open_call(
                    state, tool_call["id"], func["name"], tool_call.get("index")
                )
            state = self._append_arguments(state, func.get("arguments") or "")

        if choice.get("finish_reason") == "tool_calls":
            state = self._close_call(state)
        return state
