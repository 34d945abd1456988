"""Core types for the gateway: conversations, model descriptors and events."""

from __future__ import annotations

import base64
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from modelgate.errors import ConfigurationError


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    FUNCTION = "function"


class Vendor(str, Enum):
    """Wire protocol family a model endpoint speaks."""

    OPENAI = "openai"
    OPENAI_RESPONSES = "openai_responses"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    GROK = "grok"


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------

class Attachment:
    """Something attached to a message: quoted file text or image bytes."""

    def to_chat_message_content(self) -> str:
        return ""

    @property
    def image_data(self) -> bytes | None:
        return None


@dataclass(frozen=True)
class FileContentAttachment(Attachment):
    file_path: str
    line_start: int
    line_end: int
    content: str

    def to_chat_message_content(self) -> str:
        if self.line_start > 0:
            lines = f"{self.line_start}-{self.line_end}"
        else:
            lines = "unknown"
        return (
            "=== Context\n"
            f"File: {self.file_path}\n"
            f"Lines: {lines}\n"
            f"{self.content}\n"
            "===\n"
        )


@dataclass(frozen=True)
class ImageAttachment(Attachment):
    data: bytes
    media_type: str = "image/jpeg"

    @property
    def image_data(self) -> bytes | None:
        return self.data

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FunctionCall:
    """A function invocation requested by the model, or the reply to one."""

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def arguments_json(self) -> str:
        return json.dumps(self.arguments)


@dataclass
class Message:
    """
    A single message in a conversation.

    ``function_call`` is optional and singular: an assistant message requests
    at most one call, and a function message answers exactly one.
    """

    role: Role
    content: str = ""
    attachments: tuple[Attachment, ...] = ()
    function_call: FunctionCall | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        self.role = Role(self.role)
        self.attachments = tuple(self.attachments)

    def text_content(self) -> str:
        """Attachment text followed by the message body."""
        parts = [a.to_chat_message_content() for a in self.attachments]
        prefix = "\n".join(p for p in parts if p)
        if prefix.strip():
            return f"{prefix}\n\n{self.content}"
        return self.content

    def image_attachments(self) -> list[Attachment]:
        return [a for a in self.attachments if a.image_data is not None]

    def is_empty(self) -> bool:
        return (
            not self.content.strip()
            and not self.attachments
            and self.function_call is None
        )


class Conversation:
    """Ordered dialogue sent to a model.

    Clients read a tuple snapshot via :meth:`messages`; they never mutate
    the conversation.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = list(messages)

    def add(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def add_user(self, content: str, attachments: Iterable[Attachment] = ()) -> Message:
        return self.add(Message(Role.USER, content, tuple(attachments)))

    def add_assistant(self, content: str, function_call: FunctionCall | None = None) -> Message:
        return self.add(Message(Role.ASSISTANT, content, function_call=function_call))

    def add_function_result(self, call: FunctionCall, result: str) -> Message:
        return self.add(Message(Role.FUNCTION, result, function_call=call))

    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages())

    def __len__(self) -> int:
        return len(self._messages)

    def validate(self) -> None:
        """
        Check the function-call pairing rules.

        Raises ``ConfigurationError`` when a function message has no call, or
        refers to a call id no earlier assistant message issued.
        """
        issued: set[str] = set()
        for idx, msg in enumerate(self._messages):
            if msg.role is Role.ASSISTANT and msg.function_call is not None:
                issued.add(msg.function_call.id)
            elif msg.role is Role.FUNCTION:
                if msg.function_call is None:
                    raise ConfigurationError(
                        f"Function message #{idx} carries no function call"
                    )
                if msg.function_call.id not in issued:
                    raise ConfigurationError(
                        f"Function message #{idx} answers unknown call "
                        f"{msg.function_call.id!r}",
                        hint="A function result must follow the assistant "
                        "message that requested it.",
                    )


@dataclass(frozen=True)
class ConversationContext:
    """Identifies who is calling and which tools they may use.

    ``allowed_tools=None`` allows every tool in the catalog.
    """

    context_id: str = "chat"
    allowed_tools: frozenset[str] | None = None

    def is_tool_allowed(self, qualified_name: str) -> bool:
        return self.allowed_tools is None or qualified_name in self.allowed_tools


# ---------------------------------------------------------------------------
# Model descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelDescriptor:
    """
    Endpoint and capabilities of one configured model.

    ``temperature`` is in tenths (7 means 0.7).  ``vendor`` is the explicit
    protocol tag; ``None`` marks a legacy entry whose vendor is inferred
    from ``api_url``.
    """

    uid: str
    api_url: str
    api_key: str
    model_name: str
    temperature: int = 7
    vision: bool = False
    function_calling: bool = False
    vendor: Vendor | None = None

    @property
    def temperature_value(self) -> float:
        return self.temperature / 10

    def masked_key(self) -> str:
        if not self.api_key:
            return "(none)"
        return self.api_key[:6] + "..."


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class IncomingType(str, Enum):
    CONTENT = "content"
    FUNCTION_CALL = "function_call"


@dataclass(frozen=True)
class Incoming:
    """
    A normalized stream event.

    CONTENT payloads are plain text.  FUNCTION_CALL payloads are fragments
    that only form valid JSON once every fragment of a call is concatenated.
    """

    type: IncomingType
    payload: str

    @classmethod
    def content(cls, text: str) -> Incoming:
        return cls(IncomingType.CONTENT, text)

    @classmethod
    def function_call(cls, fragment: str) -> Incoming:
        return cls(IncomingType.FUNCTION_CALL, fragment)


def function_call_header(call_id: str, name: str) -> str:
    """Opening FUNCTION_CALL fragment; the argument JSON must follow."""
    return (
        '{"function_call": {"id": %s, "name": %s, "arguments": '
        % (json.dumps(call_id), json.dumps(name))
    )


FUNCTION_CALL_CLOSE = "}}"
EMPTY_ARGUMENTS = "{}"
