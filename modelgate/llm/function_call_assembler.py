"""
Assembles FUNCTION_CALL fragments into complete ``FunctionCall`` objects.

Fragments of one call concatenate to::

    {"function_call": {"id": "...", "name": "...", "arguments": {...}}}

Several calls in one stream simply follow each other.  ``flush()`` decodes
the buffer object by object; a buffer that does not decode is dropped and
an error is recorded in ``self.errors``.
"""

from __future__ import annotations

import json

from modelgate.llm.types import FunctionCall

_decoder = json.JSONDecoder()


class FunctionCallAssembler:
    """Buffers raw fragments and emits finished ``FunctionCall`` objects."""

    def __init__(self) -> None:
        self._buf: list[str] = []
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, fragment: str) -> None:
        """Append one fragment.  Nothing is parsed until ``flush()``."""
        self._buf.append(fragment)

    @property
    def pending(self) -> bool:
        return any(part.strip() for part in self._buf)

    def flush(self) -> list[FunctionCall]:
        """
        Decode every buffered call and clear the buffer.

        Calls decoded before a malformed object are still returned.
        """
        text = "".join(self._buf)
        self._buf.clear()

        calls: list[FunctionCall] = []
        pos = 0
        while True:
            while pos < len(text) and text[pos].isspace():
                pos += 1
            if pos >= len(text):
                break
            try:
                obj, pos = _decoder.raw_decode(text, pos)
            except json.JSONDecodeError as exc:
                self.errors.append(
                    f"function_call_json_parse_failed pos={pos} err={exc}"
                )
                break
            call = self._to_call(obj, len(calls))
            if call is not None:
                calls.append(call)
        return calls

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self.errors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _to_call(self, obj: object, idx: int) -> FunctionCall | None:
        payload = obj.get("function_call") if isinstance(obj, dict) else None
        if not isinstance(payload, dict):
            self.errors.append(f"function_call_missing idx={idx}")
            return None

        args = payload.get("arguments") or {}
        if isinstance(args, str):
            # Some vendors double-encode arguments as a JSON string.
            try:
                args = json.loads(args) if args.strip() else {}
            except json.JSONDecodeError as exc:
                self.errors.append(f"function_call_args_parse_failed idx={idx} err={exc}")
                return None
        if not isinstance(args, dict):
            self.errors.append(f"function_call_args_not_object idx={idx}")
            return None

        name = str(payload.get("name") or "").strip()
        call_id = payload.get("id") or f"call_{idx}"
        return FunctionCall(id=str(call_id), name=name, arguments=args)
