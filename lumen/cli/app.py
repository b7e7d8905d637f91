"""
Main CLI application for lumen-core.

Usage:
    lumen [--provider NAME] [--model NAME] [--base-url URL] [--profile NAME] COMMAND
    lumen verify
    lumen models
    lumen ask PROMPT
    lumen chat [--system TEXT]
    lumen watch [--interval SECONDS] [--count N]
    lumen providers
    lumen config show|validate
    lumen version
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console

from lumen import __version__
from lumen.config import LumenConfig, find_config_path, load_config
from lumen.llm.cancellation import CancellationToken
from lumen.llm.gateway import LLMGateway
from lumen.llm.registry import get_capability, list_providers
from lumen.log import setup_logging
from lumen.types import ChatMessage, ConnectionStatus

app = typer.Typer(name="lumen", help="Lumen - unified LLM provider gateway")
config_app = typer.Typer(help="Configuration management")

app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(ctx: typer.Context) -> LumenConfig:
    opts = ctx.obj or {}
    return load_config(
        find_config_path(),
        profile=opts.get("profile"),
        cli_overrides={
            "llm.provider": opts.get("provider"),
            "llm.model": opts.get("model"),
            "llm.base_url": opts.get("base_url"),
        },
    )


def _gateway(cfg: LumenConfig) -> LLMGateway:
    return LLMGateway.from_config(cfg)


@app.callback()
def main_callback(
    ctx: typer.Context,
    provider: Optional[str] = typer.Option(None, help="Provider id (local, openai, anthropic, gemini, groq, custom)"),
    model: Optional[str] = typer.Option(None, help="Model name"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Base URL for local/custom providers"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Lumen - unified LLM provider gateway."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    ctx.obj = {
        "provider": provider,
        "model": model,
        "base_url": base_url,
        "profile": profile,
    }


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def verify(ctx: typer.Context):
    """Check connectivity and list the provider's models."""
    from lumen.cli.output import OutputFormatter

    cfg = _load(ctx)
    provider_config = cfg.provider_config()
    result = asyncio.run(_gateway(cfg).verify(provider_config))

    formatter = OutputFormatter(console)
    formatter.format_probe(provider_config, result)
    if result.models:
        formatter.format_models(result.models, selected=provider_config.model_name)
    if not result.success:
        raise typer.Exit(1)


@app.command()
def models(ctx: typer.Context):
    """List models, falling back to the known list when discovery fails."""
    from lumen.cli.output import OutputFormatter

    cfg = _load(ctx)
    provider_config = cfg.provider_config()
    gateway = _gateway(cfg)
    result = asyncio.run(gateway.verify(provider_config))

    formatter = OutputFormatter(console)
    if not result.success:
        console.print(f"[yellow]{result.message}[/yellow]")
    selected = gateway.choose_model(provider_config, result).model_name
    formatter.format_models(
        gateway.fallback_models(provider_config, result),
        selected=selected,
    )


@app.command()
def ask(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Question to send"),
    system: Optional[str] = typer.Option(None, help="System instruction"),
):
    """Send a single prompt and stream the answer."""
    cfg = _load(ctx)
    provider_config = cfg.provider_config()
    messages = [ChatMessage(role="user", content=prompt)]
    if system:
        messages.insert(0, ChatMessage(role="system", content=system))

    async def _run():
        token = CancellationToken()
        async for fragment in _gateway(cfg).stream(provider_config, messages, token):
            console.print(fragment, end="", markup=False, highlight=False)
        console.print()

    asyncio.run(_run())


@app.command()
def chat(
    ctx: typer.Context,
    system: Optional[str] = typer.Option(None, help="System instruction"),
):
    """Start an interactive chat session."""
    from lumen.cli.chat import ChatHandler

    cfg = _load(ctx)
    handler = ChatHandler(
        gateway=_gateway(cfg),
        config=cfg.provider_config(),
        console=console,
        system_prompt=system,
    )
    asyncio.run(handler.run_loop())


@app.command()
def watch(
    ctx: typer.Context,
    interval: Optional[float] = typer.Option(None, help="Seconds between checks"),
    count: Optional[int] = typer.Option(None, help="Stop after N checks"),
):
    """Poll the connection and report status changes."""
    from lumen.cli.output import OutputFormatter

    cfg = _load(ctx)
    provider_config = cfg.provider_config()
    gateway = _gateway(cfg)
    formatter = OutputFormatter(console)

    capability = get_capability(provider_config.provider)
    if interval is None and capability is not None and capability.poll_interval:
        interval = cfg.gateway.poll_interval_seconds

    async def _run():
        last = ConnectionStatus.CHECKING
        label = capability.label if capability is not None else provider_config.provider
        formatter.format_status_change(
            datetime.now().strftime("%H:%M:%S"), last, f"Checking {label} connection..."
        )
        checks = 0
        while True:
            result = await gateway.verify(provider_config)
            status = ConnectionStatus.from_probe(result)
            if status is not last:
                formatter.format_status_change(
                    datetime.now().strftime("%H:%M:%S"), status, result.message
                )
                last = status
            checks += 1
            if not interval or (count is not None and checks >= count):
                return
            await asyncio.sleep(interval)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


@app.command()
def providers():
    """List supported providers."""
    from lumen.cli.output import OutputFormatter

    OutputFormatter(console).format_providers(list_providers())


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Show effective config."""
    from lumen.cli.output import OutputFormatter

    cfg = _load(ctx)
    formatter = OutputFormatter(console)
    formatter.format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(ctx: typer.Context):
    """Validate config and show what the gateway will receive."""
    config_path = find_config_path()
    try:
        cfg = _load(ctx)
    except Exception as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    capability = get_capability(cfg.llm.provider)
    if capability is None:
        console.print(f"[red]Unknown provider:[/red] {cfg.llm.provider}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    provider_config = cfg.provider_config()
    console.print(f"  Provider: {capability.label} ({provider_config.model_name})")
    if capability.requires_base_url:
        console.print(f"  Base URL: {provider_config.base_url or '[red]missing[/red]'}")
    if capability.requires_key and not provider_config.api_key:
        console.print("  [yellow]No API key configured.[/yellow]")
    console.print(f"  Page secure: {cfg.gateway.page_secure}")


@app.command()
def version():
    """Show version."""
    console.print(f"lumen-core v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
