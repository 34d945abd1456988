"""
Tool catalog advertised to models, and the per-vendor schema flattening.

Tool sources (e.g. a file-inspection client) register their tools under a
source name.  Each tool is exposed to the model as ``<source>__<tool>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

import jsonschema

from modelgate.errors import ConfigurationError
from modelgate.llm.types import ConversationContext

logger = logging.getLogger(__name__)

QUALIFIED_SEPARATOR = "__"


@dataclass(frozen=True)
class ToolSpec:
    """A callable tool as declared by its source."""

    name: str
    description: str = ""
    properties: dict = field(default_factory=dict)
    required: tuple[str, ...] = ()
    type: str = "object"

    def raw_schema(self) -> dict:
        schema: dict = {"type": self.type, "properties": dict(self.properties)}
        if self.required:
            schema["required"] = list(self.required)
        return schema


def qualified_name(source: str, tool: str) -> str:
    return f"{source}{QUALIFIED_SEPARATOR}{tool}"


def split_qualified_name(name: str) -> tuple[str, str]:
    """Split ``source__tool``; a name without a separator has no source."""
    source, sep, tool = name.partition(QUALIFIED_SEPARATOR)
    if not sep:
        return "", name
    return source, tool


def normalize_parameters(spec: ToolSpec, *, require_properties: bool = False) -> dict:
    """
    Build a parameter schema every vendor accepts.

    Every ``required`` name is guaranteed to exist in ``properties``.  With
    *require_properties*, an otherwise empty ``properties`` gets a dummy
    entry for vendors that reject empty objects.
    """
    properties = {k: dict(v) if isinstance(v, dict) else v for k, v in spec.properties.items()}
    required = [name for name in spec.required]

    for name in required:
        if name not in properties:
            properties[name] = {
                "type": "string",
                "description": f"Parameter {name}",
            }

    if require_properties and not properties:
        properties["dummy"] = {
            "type": "string",
            "description": "Dummy parameter",
        }

    params: dict = {"type": spec.type, "properties": properties}
    if required:
        params["required"] = required
    return params


class ToolCatalog:
    """Read-only mapping of tool source name to its tools."""

    def __init__(self) -> None:
        self._sources: dict[str, list[ToolSpec]] = {}

    def register(self, source: str, tools: list[ToolSpec]) -> None:
        if QUALIFIED_SEPARATOR in source:
            raise ValueError(f"Tool source name may not contain {QUALIFIED_SEPARATOR!r}: {source}")
        self._sources.setdefault(source, []).extend(tools)

    def sources(self) -> list[str]:
        return list(self._sources)

    def tools(self, source: str) -> list[ToolSpec]:
        return list(self._sources.get(source, ()))

    def __len__(self) -> int:
        return sum(len(t) for t in self._sources.values())

    def iter_tools(
        self, context: ConversationContext | None = None
    ) -> Iterator[tuple[str, ToolSpec]]:
        """Yield ``(qualified_name, spec)`` in registration order."""
        for source, tools in self._sources.items():
            for spec in tools:
                name = qualified_name(source, spec.name)
                if context is not None and not context.is_tool_allowed(name):
                    continue
                yield name, spec

    def check(self) -> None:
        """
        Validate every tool's parameter schema.

        Raises ``ConfigurationError`` on the first malformed tool, so a bad
        catalog never reaches a vendor.
        """
        for name, spec in self.iter_tools():
            for req in spec.required:
                if not isinstance(req, str):
                    raise ConfigurationError(
                        f"Tool {name}: required entries must be strings, got {req!r}"
                    )
            if not isinstance(spec.properties, dict):
                raise ConfigurationError(f"Tool {name}: properties must be a mapping")
            try:
                jsonschema.Draft202012Validator.check_schema(spec.raw_schema())
            except jsonschema.SchemaError as exc:
                raise ConfigurationError(
                    f"Tool {name}: invalid parameter schema: {exc.message}"
                ) from exc

    # ------------------------------------------------------------------
    # Vendor shapes
    # ------------------------------------------------------------------

    def openai_functions(self, context: ConversationContext | None = None) -> list[dict]:
        """Legacy chat-completions ``functions`` entries."""
        return [
            {
                "name": name,
                "description": spec.description,
                "parameters": normalize_parameters(spec),
            }
            for name, spec in self.iter_tools(context)
        ]

    def responses_tools(self, context: ConversationContext | None = None) -> list[dict]:
        return [
            {
                "type": "function",
                "name": name,
                "description": spec.description,
                "parameters": normalize_parameters(spec),
            }
            for name, spec in self.iter_tools(context)
        ]

    def anthropic_tools(self, context: ConversationContext | None = None) -> list[dict]:
        return [
            {
                "name": name,
                "description": spec.description,
                "input_schema": normalize_parameters(spec),
            }
            for name, spec in self.iter_tools(context)
        ]

    def chat_tools(self, context: ConversationContext | None = None) -> list[dict]:
        """``tools`` entries for chat endpoints using the function wrapper."""
        return [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": spec.description,
                    "parameters": normalize_parameters(spec),
                },
            }
            for name, spec in self.iter_tools(context)
        ]

    def gemini_declarations(self, context: ConversationContext | None = None) -> list[dict]:
        declarations = []
        for name, spec in self.iter_tools(context):
            params = normalize_parameters(spec, require_properties=True)
            params["type"] = "OBJECT"
            declarations.append({
                "name": name,
                "description": spec.description,
                "parameters": params,
            })
        return declarations
