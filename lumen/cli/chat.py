"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import contextlib
import signal

from rich.console import Console

from lumen.cli.output import OutputFormatter
from lumen.llm.cancellation import CancellationToken
from lumen.llm.gateway import LLMGateway
from lumen.types import (
    ChatMessage,
    ContentConverter,
    PassthroughConverter,
    ProviderConfig,
    convert_messages,
)


class ChatHandler:
    """
    Manages the interactive chat loop.

    Streams each reply as it arrives; Ctrl-C while a reply is streaming
    cancels that reply and keeps the session alive.
    """

    def __init__(
        self,
        gateway: LLMGateway,
        config: ProviderConfig,
        console: Console | None = None,
        system_prompt: str | None = None,
        converter: ContentConverter | None = None,
    ) -> None:
        self.gateway = gateway
        self.config = config
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.converter = converter or PassthroughConverter()
        self.system_prompt = system_prompt
        self.history: list[ChatMessage] = []
        self._running = True

    def _conversation(self) -> list[ChatMessage]:
        messages = list(self.history)
        if self.system_prompt:
            messages.insert(0, ChatMessage(role="system", content=self.system_prompt))
        return convert_messages(messages, self.converter)

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/clear":
            self.history.clear()
            self.console.print("  History cleared.")
            return True

        if cmd == "/models":
            probe = await self.gateway.verify(self.config)
            if not probe.success:
                self.console.print(f"  [yellow]{probe.message}[/yellow]")
            self.formatter.format_models(
                self.gateway.fallback_models(self.config, probe),
                selected=self.config.model_name,
            )
            return True

        if cmd == "/model":
            if not arg:
                self.console.print(f"  Active model: [bold]{self.config.model_name}[/bold]")
            else:
                self.config = self.config.with_model(arg)
                self.console.print(f"  Switched to model: [bold]{arg}[/bold]")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit         - Exit the chat\n"
                "  /clear        - Forget the conversation so far\n"
                "  /models       - List models offered by the provider\n"
                "  /model [NAME] - Show or switch the model\n"
                "  /help         - Show this help\n"
                "  Ctrl-C while a reply streams cancels that reply.\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> None:
        """Send the user turn and stream the reply."""
        self.history.append(ChatMessage(role="user", content=user_input))
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        content_parts: list[str] = []

        # add_signal_handler is unavailable on Windows event loops.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, token.cancel)
        try:
            async for fragment in self.gateway.stream(self.config, self._conversation(), token):
                content_parts.append(fragment)
                self.console.print(fragment, end="", markup=False, highlight=False)
        finally:
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(signal.SIGINT)

        if token.cancelled:
            self.console.print(" [dim](cancelled)[/dim]", end="")
        self.console.print()

        reply = "".join(content_parts)
        if reply:
            self.history.append(ChatMessage(role="assistant", content=reply))

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]Lumen[/bold] - AI assistant\n"
            f"[dim]{self.config.provider} / {self.config.model_name}. "
            "Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ", end="")
            await self.handle_input(user_input)
