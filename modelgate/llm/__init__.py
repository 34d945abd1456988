"""LLM gateway -- conversation types, event broadcast and function-call assembly.

Provider clients live in ``modelgate.llm.providers``; the router that picks
one lives in ``modelgate.llm.router``.
"""

from modelgate.llm.types import (
    Attachment,
    Conversation,
    ConversationContext,
    FileContentAttachment,
    FunctionCall,
    ImageAttachment,
    Incoming,
    IncomingType,
    Message,
    ModelDescriptor,
    Role,
    Vendor,
)
from modelgate.llm.publisher import Publisher, Subscriber
from modelgate.llm.function_call_assembler import FunctionCallAssembler
from modelgate.llm.subscribers import (
    CallbackSubscriber,
    FunctionCallSubscriber,
    LoggingSubscriber,
)

__all__ = [
    "Attachment",
    "CallbackSubscriber",
    "Conversation",
    "ConversationContext",
    "FileContentAttachment",
    "FunctionCall",
    "FunctionCallAssembler",
    "FunctionCallSubscriber",
    "ImageAttachment",
    "Incoming",
    "IncomingType",
    "LoggingSubscriber",
    "Message",
    "ModelDescriptor",
    "Publisher",
    "Role",
    "Subscriber",
    "Vendor",
]
