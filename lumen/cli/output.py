"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from lumen.llm.registry import ProviderCapability
from lumen.types import ConnectionStatus, ProbeResult, ProviderConfig

STATUS_COLORS = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.CHECKING: "yellow",
    ConnectionStatus.DISCONNECTED: "red",
}


class OutputFormatter:
    """Rich-based output formatting for the lumen CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_probe(self, config: ProviderConfig, result: ProbeResult) -> None:
        status = ConnectionStatus.from_probe(result)
        color = STATUS_COLORS[status]
        self.console.print(Panel(
            f"[dim]Provider:[/dim] {config.provider}\n"
            f"[dim]Base URL:[/dim] {config.base_url or '-'}\n"
            f"[dim]Model:[/dim] {config.model_name or '-'}\n"
            f"[dim]Status:[/dim] [{color}]{status.value}[/{color}]\n\n"
            f"{result.message}",
            title="Connection",
        ))

    def format_models(
        self,
        models: list[str],
        selected: str | None = None,
        title: str = "Models",
    ) -> None:
        if not models:
            self.console.print("[dim]No models available.[/dim]")
            return

        table = Table(title=title)
        table.add_column("Model", style="cyan", no_wrap=True)
        table.add_column("Selected", no_wrap=True)
        for name in models:
            table.add_row(name, Text("*", style="green") if name == selected else "")
        self.console.print(table)

    def format_status_change(self, when: str, status: ConnectionStatus, message: str) -> None:
        color = STATUS_COLORS[status]
        self.console.print(f"[dim]{when}[/dim] [{color}]{status.value}[/{color}] {message}")

    def format_providers(self, capabilities: list[ProviderCapability]) -> None:
        table = Table(title="Providers", show_lines=True)
        table.add_column("Id", style="cyan", no_wrap=True)
        table.add_column("Label", no_wrap=True)
        table.add_column("Stream", no_wrap=True)
        table.add_column("Needs")
        for cap in capabilities:
            needs = [n for n, flag in (("api key", cap.requires_key), ("base url", cap.requires_base_url)) if flag]
            table.add_row(cap.provider.value, cap.label, cap.wire.value, ", ".join(needs) or "-")
        self.console.print(table)

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))
