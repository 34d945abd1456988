"""
Provider router -- picks the vendor client for a model and wires listeners.

The router is the primary entry point for callers that want a streaming
client.  It:

  1. Holds the configured models and the chat/completion selections.
  2. Resolves each model to a ``Vendor`` (explicit tag, else URL inference).
  3. Mints a fresh client per request and attaches the listener set the
     calling context needs.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from modelgate.config import GatewayConfig
from modelgate.errors import ConfigurationError
from modelgate.llm.providers.anthropic import AnthropicClient
from modelgate.llm.providers.base import StreamingClient
from modelgate.llm.providers.deepseek import DeepSeekClient
from modelgate.llm.providers.gemini import GeminiClient
from modelgate.llm.providers.grok import GrokClient
from modelgate.llm.providers.openai_chat import OpenAIChatClient
from modelgate.llm.providers.openai_responses import OpenAIResponsesClient
from modelgate.llm.subscribers import (
    CallbackSubscriber,
    FunctionCallSubscriber,
    LoggingSubscriber,
)
from modelgate.llm.types import ConversationContext, FunctionCall, ModelDescriptor, Vendor
from modelgate.tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)

# Checked in order; the first substring found in the URL wins.
_URL_HINTS: tuple[tuple[str, Vendor], ...] = (
    ("anthropic", Vendor.ANTHROPIC),
    ("deepseek", Vendor.DEEPSEEK),
    ("googleapis", Vendor.GEMINI),
    ("/v1/responses", Vendor.OPENAI_RESPONSES),
    ("api.x.ai/v1/chat/completions", Vendor.GROK),
)

CLIENTS: dict[Vendor, type[StreamingClient]] = {
    Vendor.OPENAI: OpenAIChatClient,
    Vendor.OPENAI_RESPONSES: OpenAIResponsesClient,
    Vendor.ANTHROPIC: AnthropicClient,
    Vendor.GEMINI: GeminiClient,
    Vendor.DEEPSEEK: DeepSeekClient,
    Vendor.GROK: GrokClient,
}


def infer_vendor(api_url: str) -> Vendor:
    url = api_url.lower()
    for hint, vendor in _URL_HINTS:
        if hint in url:
            return vendor
    return Vendor.OPENAI


def resolve_vendor(model: ModelDescriptor) -> Vendor:
    """The model's explicit vendor, or one inferred from its URL."""
    if model.vendor is not None:
        return model.vendor
    vendor = infer_vendor(model.api_url)
    logger.debug("Model %s has no vendor tag; inferred %s from URL", model.uid, vendor.value)
    return vendor


class ProviderRouter:
    """
    Routes requests to the right vendor client.

    Parameters
    ----------
    config:
        Gateway configuration.  Its ``models`` are registered and its
        ``chat_model``/``completion_model`` selected when set.
    tool_catalog:
        Tools advertised to function-calling models.
    transport, sleep:
        Passed to every client (test seams).
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        tool_catalog: ToolCatalog | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or GatewayConfig()
        self._tools = tool_catalog or ToolCatalog()
        self._transport = transport
        self._sleep = sleep
        self._models: dict[str, ModelDescriptor] = {}
        self._chat: str | None = None
        self._completion: str | None = None

        for model in self._config.models:
            self.register_model(model)
        for uid in (self._config.chat_model, self._config.completion_model):
            if uid and uid not in self._models:
                raise ConfigurationError(
                    f"Selected model {uid!r} is not configured",
                    hint=f"Configured models: {list(self._models)}",
                )
        if self._config.chat_model:
            self.select_chat_model(self._config.chat_model)
        if self._config.completion_model:
            self.select_completion_model(self._config.completion_model)

    # ------------------------------------------------------------------
    # Model management
    # ------------------------------------------------------------------

    def register_model(self, model: ModelDescriptor) -> None:
        """Register *model* under its uid.  Overwrites any existing entry."""
        self._models[model.uid] = model

    def _require_registered(self, uid: str) -> None:
        if uid not in self._models:
            raise KeyError(
                f"Unknown model {uid!r}. Registered: {list(self._models)}"
            )

    def select_chat_model(self, uid: str) -> None:
        """
        Switch the interactive chat model.

        Raises ``KeyError`` if *uid* has not been registered.
        """
        self._require_registered(uid)
        self._chat = uid

    def select_completion_model(self, uid: str) -> None:
        self._require_registered(uid)
        self._completion = uid

    @property
    def models(self) -> list[ModelDescriptor]:
        return list(self._models.values())

    @property
    def chat_model(self) -> ModelDescriptor | None:
        return self._models.get(self._chat) if self._chat else None

    @property
    def completion_model(self) -> ModelDescriptor | None:
        return self._models.get(self._completion) if self._completion else None

    @property
    def tool_catalog(self) -> ToolCatalog:
        return self._tools

    # ------------------------------------------------------------------
    # Client creation
    # ------------------------------------------------------------------

    def client_class(self, model: ModelDescriptor) -> type[StreamingClient]:
        return CLIENTS[resolve_vendor(model)]

    def create_client(
        self,
        model: ModelDescriptor,
        context: ConversationContext | None = None,
    ) -> StreamingClient:
        """A new client bound to *model*.  Never shared between requests."""
        client = self.client_class(model)(
            self._config, self._tools, transport=self._transport, sleep=self._sleep
        )
        client.set_model(model)
        client.set_conversation_context(context)
        return client

    def chat_client(
        self,
        context: ConversationContext,
        *,
        on_content: Callable[[str], None],
        on_function_call: Callable[[FunctionCall], None],
        on_complete: Callable[[], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> StreamingClient:
        """
        Client for an interactive chat turn.

        Attaches the UI append listener, function-call dispatch and logging.
        Raises ``ConfigurationError`` if no chat model is selected.
        """
        model = self.chat_model
        if model is None:
            raise ConfigurationError("Model not selected", hint="Select a chat model first.")
        client = self.create_client(model, context)
        client.subscribe(CallbackSubscriber(on_content, on_complete, on_error))
        client.subscribe(FunctionCallSubscriber(on_function_call, context))
        client.subscribe(LoggingSubscriber(label=f"chat[{context.context_id}]"))
        return client

    def completion_client(self, context: ConversationContext) -> StreamingClient:
        """
        Client for silent background completion: logging only, no UI.

        Raises ``ConfigurationError`` if no completion model is selected.
        """
        model = self.completion_model
        if model is None:
            raise ConfigurationError(
                "Model not selected", hint="Select a completion model first."
            )
        client = self.create_client(model, context)
        client.subscribe(LoggingSubscriber(label=f"completion[{context.context_id}]"))
        return client
