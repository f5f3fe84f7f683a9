"""Command line entry point.

Usage:
    uv run chat-relay serve                    # start the relay server
    uv run chat-relay serve --mode=canned      # offline, canned replies
    uv run chat-relay chat                     # talk to a running relay
    uv run chat-relay chat --url=ws://host:8000/ws
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

import fire
import uvicorn
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markdown import Markdown

from .client import RelayClient
from .config import RelayConfig
from .presentation import Transcript
from .server import create_app


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


class RelayCLI:
    """chat-relay CLI."""

    def __init__(self, env_file: str = ".env.local") -> None:
        self.config = RelayConfig.load(env_file)
        self.console = Console()
        configure_logging(self.config.log_level)

    def serve(self, host: str | None = None, port: int | None = None, mode: str | None = None):
        """Run the relay server."""
        config = replace(
            self.config,
            host=host or self.config.host,
            port=port or self.config.port,
            mode=mode or self.config.mode,
        )
        if config.mode not in ("agent", "canned"):
            self.console.print(f"[red]Unknown mode: {config.mode}[/red]")
            return
        app = create_app(config)
        self.console.print(f"🔌 Relay on ws://{config.host}:{config.port}/ws ({config.mode})")
        uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())

    def chat(self, url: str | None = None):
        """Interactive chat against a running relay. Empty line or Ctrl+D quits."""
        asyncio.run(self.chat_loop(url or self.config.url))

    async def chat_loop(self, url: str) -> None:
        client = RelayClient(url)
        client.on_connection(lambda status: self.console.print(f"[dim]{status}[/dim]"))
        try:
            await client.connect()
        except OSError as e:
            self.console.print(f"[red]Cannot connect to {url}: {e}[/red]")
            return

        transcript = Transcript()
        try:
            while True:
                try:
                    text = await asyncio.to_thread(self.console.input, "[bold cyan]you>[/bold cyan] ")
                except EOFError:
                    break
                if not text.strip():
                    break
                transcript.add_user(text)
                await self.stream_reply(client, transcript, text)
        finally:
            await client.disconnect()

    async def stream_reply(self, client: RelayClient, transcript: Transcript, text: str) -> None:
        with Live(console=self.console, refresh_per_second=12) as live:

            def render(t: Transcript) -> None:
                last = t.last
                if last is None or last.sender != "assistant":
                    return
                style = "red" if last.error else "green"
                live.update(Markdown(last.text, style=style))

            unsubscribe = transcript.subscribe(render)
            try:
                async for payload in client.ask(text):
                    transcript.apply(payload)
            finally:
                unsubscribe()


def main() -> None:
    fire.Fire(RelayCLI)


if __name__ == "__main__":
    main()
