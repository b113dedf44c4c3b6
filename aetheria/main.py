"""Aetheria Weaver CLI entry point."""

import asyncio
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import Config
from .core.models import MAX_SANITY
from .core.orchestrator import SessionController
from .db import SnapshotStore
from .enums import NarratorVoice
from .llm import create_narrative_provider
from .logging_config import setup_logging
from .media import build_default
from .narrative import NarrativeGenerator

console = Console()


def print_banner():
    """Print the Aetheria banner."""
    banner = Text()
    banner.append("Aetheria Weaver", style="bold magenta")
    banner.append(f" v{__version__}\n", style="magenta")
    banner.append("Speak a world into being", style="dim")

    console.print(Panel(
        banner,
        border_style="magenta",
        padding=(0, 2)
    ))


def print_help():
    """Print available commands."""
    console.print("\n[dim]Commands:[/dim]")
    console.print("  [yellow]<theme>[/yellow]            - Start a story (no story running)")
    console.print("  [yellow]<number | text>[/yellow]    - Take a choice, or describe your own action")
    console.print("  [yellow]listen[/yellow]             - Speak instead of typing")
    console.print("  [yellow]stop[/yellow]               - Stop narration")
    console.print("  [yellow]narrate[/yellow]            - Read the shown scene aloud")
    console.print("  [yellow]history [n][/yellow]        - List past scenes, or view scene n")
    console.print("  [yellow]live[/yellow]               - Back to the current scene")
    console.print("  [yellow]voice <name>[/yellow]       - Narrator: " + ", ".join(v.value for v in NarratorVoice))
    console.print("  [yellow]speed <x>[/yellow]          - Narration speed, 0.5 to 2.0")
    console.print("  [yellow]auto narrate|listen[/yellow] - Toggle auto-narration / auto-listen")
    console.print("  [yellow]status[/yellow]             - Character sheet")
    console.print("  [yellow]reset[/yellow]              - Abandon the story")
    console.print("  [yellow]quit[/yellow]               - Exit\n")


def render_scene(controller: SessionController):
    """Print the displayed scene with its choices."""
    session = controller.session
    scene = controller.displayed_scene
    if scene is None:
        console.print("[dim]No story yet. Type a theme to begin, e.g. 'a drowned cathedral'.[/dim]")
        return

    viewing = session.viewing_index is not None
    title = f"[bold]{scene.title}[/bold]"
    if viewing:
        title += f" [dim](history {session.viewing_index + 1}/{len(session.history)})[/dim]"

    body = Text(scene.description)
    if scene.image_url:
        shown = "inline image" if scene.image_url.startswith("data:") else scene.image_url
        body.append(f"\n\n[illustration: {shown}]", style="dim")

    console.print(Panel(body, title=title, border_style="dim" if viewing else "magenta"))
    if viewing:
        console.print("[dim]Viewing the past. Type 'live' to return.[/dim]\n")
        return

    for i, choice in enumerate(scene.choices, start=1):
        item = f" [dim](uses {choice.used_item})[/dim]" if choice.used_item else ""
        console.print(f"  [cyan]{i}.[/cyan] {choice.text}{item}")
    console.print()


def render_status(controller: SessionController):
    """Print the character sheet and preferences."""
    session = controller.session
    character = session.character
    prefs = session.preferences

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Health", f"{character.health}/{character.max_health}")
    table.add_row("Sanity", f"{character.sanity}/{MAX_SANITY}")
    table.add_row("Experience", str(character.experience))
    table.add_row("Inventory", ", ".join(character.inventory) or "-")
    table.add_row("Status", ", ".join(character.status_effects) or "-")
    table.add_row("Narrator", f"{prefs.voice} at {prefs.speed:.2f}x")
    table.add_row("Auto narrate", "on" if prefs.narrate_on_generation else "off")
    table.add_row("Auto listen", "on" if prefs.auto_listen else "off")
    table.add_row("Cloud media", "available" if controller.cloud_access else "offline")
    console.print(Panel(table, title="[dim]Character[/dim]", border_style="dim"))


def print_error(controller: SessionController):
    if controller.session.error:
        console.print(f"[red]{controller.session.error}[/red]")


async def run_command(controller: SessionController, player_input: str) -> bool:
    """Handle one line of input. Returns False to quit."""
    text = player_input.strip()
    lower = text.lower()
    words = lower.split()
    session = controller.session

    if lower == "quit":
        return False
    if lower == "help":
        print_help()
    elif lower == "status":
        render_status(controller)
    elif lower == "reset":
        controller.reset()
        console.print("[dim]The story unravels.[/dim]")
    elif lower == "narrate":
        await controller.narrate()
        print_error(controller)
    elif lower == "stop":
        controller.stop_narration()
    elif lower == "listen":
        console.print("[dim]Listening...[/dim]")
        if await controller.listen():
            render_scene(controller)
        print_error(controller)
    elif lower == "live":
        controller.return_to_live()
        render_scene(controller)
    elif words and words[0] == "history":
        if len(words) == 1:
            for i, past in enumerate(session.history, start=1):
                console.print(f"  [dim]{i}.[/dim] {past.title}")
            if not session.history:
                console.print("[dim]No past scenes yet.[/dim]")
        elif words[1].isdigit() and controller.view_history(int(words[1]) - 1):
            render_scene(controller)
        else:
            console.print("[red]No such scene.[/red]")
    elif words and words[0] == "voice" and len(words) == 2:
        try:
            prefs = controller.set_preferences(voice=words[1])
            console.print(f"[dim]Narrator: {prefs.voice}[/dim]")
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
    elif words and words[0] == "speed" and len(words) == 2:
        try:
            prefs = controller.set_preferences(speed=float(words[1]))
            console.print(f"[dim]Speed: {prefs.speed:.2f}x[/dim]")
        except ValueError:
            console.print("[red]Speed must be a number between 0.5 and 2.0.[/red]")
    elif words[:1] == ["auto"] and len(words) == 2 and words[1] in ("narrate", "listen"):
        key = "narrate_on_generation" if words[1] == "narrate" else "auto_listen"
        value = not getattr(session.preferences, key)
        controller.set_preferences(**{key: value})
        console.print(f"[dim]Auto {words[1]}: {'on' if value else 'off'}[/dim]")
    elif not session.is_active:
        console.print("[dim]Weaving the beginning...[/dim]")
        if await controller.start(text):
            render_scene(controller)
        print_error(controller)
    elif session.viewing_index is not None:
        console.print("[dim]You are viewing the past. Type 'live' first.[/dim]")
    else:
        scene = session.current_scene
        if text.isdigit() and 1 <= int(text) <= len(scene.choices):
            submitted = controller.choose(scene.choices[int(text) - 1])
        else:
            match = next((c for c in scene.choices if c.text.lower() == lower), None)
            submitted = controller.choose(match) if match else controller.act(text)
        console.print("[dim]The story turns...[/dim]")
        if await submitted:
            render_scene(controller)
        print_error(controller)
    return True


async def game_loop(controller: SessionController):
    """Main game loop."""
    console.print("[dim]Type 'help' for commands, 'quit' to exit[/dim]\n")
    render_scene(controller)

    while True:
        try:
            # Read input off the loop so narration keeps playing
            player_input = await asyncio.to_thread(console.input, "[bold yellow]> [/bold yellow]")
            if not player_input.strip():
                continue
            if not await run_command(controller, player_input):
                break
        except (KeyboardInterrupt, EOFError):
            break
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")
            if Config.is_debug():
                console.print_exception()


async def async_main():
    """Async main function."""
    debug = Config.is_debug()
    setup_logging(
        "DEBUG" if debug else Config.LOG_LEVEL,
        log_file=Config.DATA_DIR / "aetheria.log",
        console=debug,
    )
    print_banner()

    issues = Config.validate()
    if issues:
        console.print("[red]Configuration issues:[/red]")
        for issue in issues:
            console.print(f"  [red]- {issue}[/red]")
        console.print("\n[dim]Copy .env.example to .env and configure your API keys.[/dim]")
        sys.exit(1)

    try:
        provider = create_narrative_provider()
    except ValueError as e:
        console.print(f"[red]LLM Error: {e}[/red]")
        sys.exit(1)
    console.print(f"[dim]Story provider: [green]{provider.name}[/green] ({provider.default_model})[/dim]")

    controller = SessionController(
        generator=NarrativeGenerator(provider, history_window=Config.HISTORY_WINDOW),
        media=build_default(),
        store=SnapshotStore(),
    )
    if controller.restore():
        console.print("[green]Your last story was restored.[/green]")

    try:
        await game_loop(controller)
    finally:
        await controller.close()

    console.print("\n[magenta]The loom rests. Thanks for playing![/magenta]")


def main():
    """Entry point for the CLI."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
