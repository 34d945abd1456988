"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from modelgate.llm.router import resolve_vendor
from modelgate.llm.types import FunctionCall, ModelDescriptor

VENDOR_COLORS = {
    "openai": "green",
    "openai_responses": "bright_green",
    "anthropic": "yellow",
    "gemini": "blue",
    "deepseek": "cyan",
    "grok": "magenta",
}


class OutputFormatter:
    """Rich-based output formatting for the modelgate CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_model_list(
        self,
        models: list[ModelDescriptor],
        chat_uid: str | None = None,
        completion_uid: str | None = None,
    ) -> None:
        table = Table(title="Configured Models", show_lines=True)
        table.add_column("UID", style="cyan", no_wrap=True)
        table.add_column("Vendor", no_wrap=True)
        table.add_column("Model")
        table.add_column("Capabilities")
        table.add_column("Selected", no_wrap=True)

        for m in models:
            vendor = resolve_vendor(m).value
            color = VENDOR_COLORS.get(vendor, "white")
            vendor_text = Text(vendor if m.vendor else f"{vendor} (inferred)", style=color)
            caps = []
            if m.vision:
                caps.append("vision")
            if m.function_calling:
                caps.append("functions")
            caps.append(f"temp={m.temperature_value:.1f}")
            selected = []
            if m.uid == chat_uid:
                selected.append("chat")
            if m.uid == completion_uid:
                selected.append("completion")
            table.add_row(m.uid, vendor_text, m.model_name, ", ".join(caps), ", ".join(selected))

        self.console.print(table)

    def format_function_call(self, call: FunctionCall) -> None:
        args_str = json.dumps(call.arguments, indent=2, default=str)
        self.console.print(Panel(
            Syntax(args_str, "json", theme="monokai"),
            title=f"Function call: {call.name}",
            subtitle=f"[dim]{call.id}[/dim]",
            border_style="yellow",
        ))

    def format_error(self, error: BaseException) -> None:
        hint = getattr(error, "hint", None)
        body = f"[red]{type(error).__name__}:[/red] {error}"
        if hint:
            body += f"\n[dim]{hint}[/dim]"
        self.console.print(Panel(body, title="Request failed", border_style="red"))

    def format_config(self, config: dict) -> None:
        config_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_str, "json", theme="monokai"))
