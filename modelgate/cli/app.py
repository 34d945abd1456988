"""
Main CLI application for modelgate.

Usage:
    modelgate ask PROMPT [--model UID] [--system TEXT]
    modelgate complete PROMPT [--timeout SECONDS]
    modelgate models
    modelgate config show|validate
    modelgate version
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from modelgate.config import GatewayConfig, load_config
from modelgate.errors import GatewayError

app = typer.Typer(name="modelgate", help="Modelgate - streaming LLM gateway CLI")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "modelgate.yaml",
        Path.cwd() / "modelgate.yml",
        Path.home() / ".config" / "modelgate" / "config.yaml",
        Path.home() / ".modelgate" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(
    config: Optional[Path],
    profile: Optional[str],
    overrides: dict | None = None,
) -> GatewayConfig:
    try:
        return load_config(config or _get_config_path(), profile=profile, cli_overrides=overrides)
    except GatewayError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    model: Optional[str] = typer.Option(None, help="Model uid (defaults to chat_model)"),
    system: Optional[str] = typer.Option(None, help="Override the system prompt"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Stream a single answer from the chat model."""
    from modelgate.cli.output import OutputFormatter
    from modelgate.llm.router import ProviderRouter
    from modelgate.llm.types import Conversation, ConversationContext

    _setup_logging(log_level)
    overrides: dict = {}
    if model:
        overrides["chat_model"] = model
    if system is not None:
        overrides["prompts.system"] = system
    cfg = _load(config, profile, overrides)
    formatter = OutputFormatter(console)

    try:
        router = ProviderRouter(cfg)
        conversation = Conversation()
        conversation.add_user(prompt)
        client = router.chat_client(
            ConversationContext("cli"),
            on_content=lambda text: console.print(text, end="", markup=False, highlight=False),
            on_function_call=formatter.format_function_call,
        )
        action = client.run(conversation)
    except GatewayError as e:
        formatter.format_error(e)
        raise typer.Exit(1)

    action()
    console.print()
    if client.publisher.error is not None:
        formatter.format_error(client.publisher.error)
        raise typer.Exit(1)


@app.command()
def complete(
    prompt: str = typer.Argument(..., help="Text to complete"),
    timeout: Optional[float] = typer.Option(None, help="Seconds to wait for the result"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Run a silent background completion and print the result."""
    from modelgate.cli.output import OutputFormatter
    from modelgate.llm.completion import StreamingCompletion
    from modelgate.llm.router import ProviderRouter
    from modelgate.llm.types import Conversation, ConversationContext

    _setup_logging(log_level)
    cfg = _load(config, profile)
    formatter = OutputFormatter(console)

    conversation = Conversation()
    conversation.add_user(prompt)
    context = ConversationContext(
        "completion", frozenset(cfg.completion.allowed_tools) or None
    )
    try:
        with StreamingCompletion(
            ProviderRouter(cfg),
            enabled=cfg.completion.enabled,
            default_timeout=cfg.completion.timeout_seconds,
        ) as completion:
            text = completion.complete(conversation, timeout, context)
    except (GatewayError, TimeoutError) as e:
        formatter.format_error(e)
        raise typer.Exit(1)
    console.print(text, markup=False, highlight=False)


@app.command()
def models(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """List configured models and their resolved vendors."""
    from modelgate.cli.output import OutputFormatter

    cfg = _load(config, profile)
    if not cfg.models:
        console.print("[dim]No models configured.[/dim]")
        return
    OutputFormatter(console).format_model_list(
        cfg.models, cfg.chat_model or None, cfg.completion_model or None
    )


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config (API keys masked)."""
    from modelgate.cli.output import OutputFormatter

    cfg = _load(config, profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate config and show the resolved vendor of each model."""
    from modelgate.llm.router import ProviderRouter, resolve_vendor

    config_path = config or _get_config_path()
    cfg = _load(config_path, None)
    try:
        router = ProviderRouter(cfg)
    except GatewayError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    for m in router.models:
        console.print(f"  {m.uid}: {resolve_vendor(m).value} ({m.model_name})")
    chat = router.chat_model
    console.print(f"  Chat model: {chat.uid if chat else '(none)'}")


@app.command()
def version():
    """Show version."""
    console.print(f"modelgate v{VERSION}")


def main():
    app()


if __name__ == "__main__":
    main()
