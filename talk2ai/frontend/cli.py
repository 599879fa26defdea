"""talk2ai-chat: interactive terminal client for the talk2ai backend."""

from __future__ import annotations

import asyncio
import logging
import os

import click
import httpx
from rich.console import Console

from talk2ai import __version__
from talk2ai.chat.models import Turn
from talk2ai.frontend.session import ChatBusyError, ChatSession
from talk2ai.frontend.settings_store import SettingsStore

console = Console()

DEFAULT_SETTINGS_PATH = os.path.join(os.path.expanduser("~"), ".talk2ai", "settings.json")

HELP_TEXT = """\
[bold]Commands[/bold]
  /reset            clear the conversation
  /search on|off    toggle browser search
  /model <id>       switch model (clears the conversation)
  /quit             exit"""


class TurnPrinter:
    """Prints only the part of the assistant turn that has not been shown yet."""

    def __init__(self, out: Console) -> None:
        self.out = out
        self.turn_id: int | None = None
        self.shown = 0

    def __call__(self, turn: Turn) -> None:
        if turn.id != self.turn_id:
            self.turn_id = turn.id
            self.shown = 0
            self.out.print("[bold green]Assistant[/bold green] > ", end="")
        delta = turn.content[self.shown :]
        self.shown = len(turn.content)
        if delta:
            self.out.print(delta, end="", markup=False, highlight=False)


def handle_command(session: ChatSession, line: str) -> bool:
    """Run a slash command. Returns False when the user asked to quit."""
    command, _, argument = line.strip().partition(" ")
    argument = argument.strip()

    if command in ("/quit", "/exit"):
        return False
    if command == "/reset":
        session.reset()
        console.print("[dim]Conversation cleared[/dim]")
    elif command == "/search":
        if argument not in ("on", "off"):
            console.print("[red]Usage: /search on|off[/red]")
        else:
            session.apply_settings(session.settings.model_copy(update={"enable_web_search": argument == "on"}))
            console.print(f"[dim]Web search {argument}[/dim]")
    elif command == "/model":
        if not argument:
            console.print(f"[dim]Current model: {session.settings.llm_model}[/dim]")
        else:
            session.apply_settings(session.settings.model_copy(update={"llm_model": argument}))
            console.print(f"[dim]Model: {argument}[/dim]")
    else:
        console.print(HELP_TEXT)
    return True


async def run_chat(
    base_url: str,
    settings_path: str,
    model: str | None = None,
    search: bool | None = None,
) -> None:
    store = SettingsStore(settings_path)
    printer = TurnPrinter(console)

    async with httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(60.0, connect=10.0)) as http_client:
        session = ChatSession(
            http_client,
            settings_store=store,
            on_update=printer,
            on_error=lambda message: console.print(f"\n[red]✗[/red] {message}"),
        )

        overrides: dict[str, object] = {}
        if model:
            overrides["llm_model"] = model
        if search is not None:
            overrides["enable_web_search"] = search
        if overrides:
            session.apply_settings(session.settings.model_copy(update=overrides))

        console.print(
            f"[bold]talk2ai[/bold] {__version__}  model=[cyan]{session.settings.llm_model}[/cyan]"
            f"  search={'on' if session.settings.enable_web_search else 'off'}"
        )
        console.print("[dim]Type /help for commands[/dim]")

        while True:
            try:
                line = await asyncio.to_thread(console.input, "[bold cyan]You[/bold cyan] > ")
            except (EOFError, KeyboardInterrupt):
                console.print()
                break

            if line.startswith("/"):
                if not handle_command(session, line):
                    break
                continue

            try:
                turn = await session.submit(line)
            except ChatBusyError as e:
                console.print(f"[yellow]{e}[/yellow]")
                continue
            if turn is not None:
                console.print()


@click.command()
@click.version_option(version=__version__, prog_name="talk2ai-chat")
@click.option("--base-url", envvar="TALK2AI_BASE_URL", default="http://localhost:3000", help="Backend base URL")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_SETTINGS_PATH,
    help="Settings file",
)
@click.option("--model", default=None, help="Model id to use (saved to settings)")
@click.option("--search/--no-search", default=None, help="Enable browser search")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(base_url: str, settings_path: str, model: str | None, search: bool | None, debug: bool) -> None:
    """Chat with the talk2ai backend from the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(run_chat(base_url, settings_path, model=model, search=search))
    except KeyboardInterrupt:
        console.print("\n[dim]Bye[/dim]")


if __name__ == "__main__":
    main()
