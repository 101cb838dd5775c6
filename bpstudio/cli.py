"""Blueprint Studio CLI — Typer + Rich terminal interface.

Commands: ask, chat, extract, providers, config.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from bpstudio import __version__
from bpstudio.chat import ChatSession
from bpstudio.cli_display import BRAND, StreamingView
from bpstudio.keys import PROVIDERS, get_configured_keys, load_keys_env, mask_key
from bpstudio.providers.client import StreamingProvider
from bpstudio.providers.registry import (
    active_provider,
    default_providers_path,
    load_providers,
    load_studio_config,
)
from bpstudio.schemas.config import StudioConfig
from bpstudio.schemas.providers import PROVIDER_MODELS, ProviderConfig
from bpstudio.streaming.extractor import BlueprintExtractor
from bpstudio.sync.t3d import T3DGraph, T3DObject
from bpstudio.workspace import BlueprintWorkspace

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="bpstudio",
    help="Chat with an LLM about Unreal Blueprints and keep the T3D in sync.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

providers_app = typer.Typer(
    name="providers",
    help="Inspect configured AI providers.",
    no_args_is_help=True,
)
app.add_typer(providers_app, name="providers")

config_app = typer.Typer(
    name="config",
    help="Show studio configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

_PROVIDERS_OPTION = typer.Option(
    None, "--providers", "-p",
    help="providers.toml to use (default: ~/.bpstudio/providers.toml).",
)


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"bpstudio {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log stream and sync diagnostics.",
    ),
) -> None:
    """Blueprint Studio — streaming LLM chat with live blueprint sync."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    load_keys_env()


# ── Helpers ──────────────────────────────────────────────────────


def _load_providers(path: Path | None) -> list[ProviderConfig]:
    """Load the provider list, exit on error."""
    try:
        return load_providers(path)
    except ValueError as e:
        console.print(f"[red]Error loading providers:[/red] {e}")
        raise typer.Exit(1) from None


def _load_config() -> StudioConfig:
    """Load studio config, exit on error."""
    try:
        return load_studio_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _read_blueprint(path: Path | None) -> str:
    if path is None:
        return ""
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Cannot read blueprint:[/red] {e}")
        raise typer.Exit(1) from None


def _write_blueprint(path: Path, text: str) -> None:
    path.write_text(text + "\n", encoding="utf-8")
    console.print(f"[{BRAND['green']}]Blueprint written to[/{BRAND['green']}] {path}")


def _describe_nodes(graph: T3DGraph) -> Table:
    table = Table(title="Blueprint Nodes")
    table.add_column("Name", style="bold cyan")
    table.add_column("Class")
    table.add_column("Pos", justify="right")
    table.add_column("Pins", justify="right")
    for node in graph.walk():
        pos = f"{node.get_property('NodePosX', '?')},{node.get_property('NodePosY', '?')}"
        table.add_row(node.name or "-", node.object_class or "-", pos, str(len(node.pins)))
    return table


async def _run_turn(
    session: ChatSession, view: StreamingView, prompt: str
) -> str | None:
    with view:
        return await session.send(prompt)


def _exit_on_turn_error(e: Exception) -> None:
    if isinstance(e, ValueError):
        console.print(f"[red]{e}[/red]")
    else:
        console.print(f"[red]Failed to generate response:[/red] {e}")
    raise typer.Exit(1) from None


# ── bpstudio ask ─────────────────────────────────────────────────


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="What to ask or build."),
    blueprint: Path | None = typer.Option(
        None, "--blueprint", "-b", help="Current blueprint (T3D) sent as context.",
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the extracted blueprint here.",
    ),
    providers: Path | None = _PROVIDERS_OPTION,
) -> None:
    """Stream one reply and show the blueprint it contains."""
    provider_list = _load_providers(providers)
    studio = _load_config()
    context = _read_blueprint(blueprint)

    try:
        model = active_provider(provider_list).model
    except ValueError as e:
        _exit_on_turn_error(e)

    view = StreamingView(console, model=model)
    session = ChatSession(
        provider_list,
        blueprint_source=lambda: context,
        on_chunk=view.on_chunk,
        on_blueprint=view.on_blueprint,
        studio=studio,
    )

    try:
        asyncio.run(_run_turn(session, view, prompt))
    except (ValueError, RuntimeError, TimeoutError) as e:
        _exit_on_turn_error(e)

    if not view.blueprint:
        console.print(f"[{BRAND['dim']}]No blueprint in this reply.[/{BRAND['dim']}]")
        return
    if output is not None:
        _write_blueprint(output, view.blueprint)


# ── bpstudio chat ────────────────────────────────────────────────


_CHAT_HELP = (
    "Commands: [bold]/blueprint[/bold] show T3D · [bold]/nodes[/bold] list nodes · "
    "[bold]/move NODE X Y[/bold] · [bold]/set NODE KEY VALUE[/bold] · "
    "[bold]/edit[/bold] [FILE] raw T3D · [bold]/save FILE[/bold] · "
    "[bold]/clear[/bold] · [bold]/exit[/bold]"
)
_RAW_HELP = (
    "Raw T3D editing: type or paste lines, [bold]/done[/bold] to apply, "
    "[bold]/cancel[/bold] to keep the current blueprint."
)


@app.command()
def chat(
    blueprint: Path | None = typer.Option(
        None, "--blueprint", "-b", help="Blueprint (T3D) to start from.",
    ),
    providers: Path | None = _PROVIDERS_OPTION,
) -> None:
    """Interactive multi-turn chat that keeps a live blueprint."""
    provider_list = _load_providers(providers)
    studio = _load_config()
    try:
        provider = active_provider(provider_list)
    except ValueError as e:
        _exit_on_turn_error(e)

    console.print(
        f"[bold {BRAND['accent']}]Blueprint Studio[/bold {BRAND['accent']}] "
        f"[{BRAND['dim']}]{provider.name} · {provider.model}[/{BRAND['dim']}]"
    )
    console.print(_CHAT_HELP)
    asyncio.run(_chat_loop(provider_list, studio, _read_blueprint(blueprint)))


async def _chat_loop(
    provider_list: list[ProviderConfig], studio: StudioConfig, initial: str
) -> None:
    workspace = BlueprintWorkspace(initial, delay=studio.debounce_delay)
    workspace.open()
    view = StreamingView(console, model=provider_list[0].model)
    raw_lines: list[str] = []

    def on_blueprint(text: str, is_final: bool) -> None:
        view.on_blueprint(text, is_final)
        workspace.apply_blueprint(text, is_final)

    session = ChatSession(
        provider_list,
        blueprint_source=lambda: workspace.text,
        on_chunk=lambda chunk: view.on_chunk(chunk),
        on_blueprint=on_blueprint,
        studio=studio,
    )
    try:
        while True:
            prompt = "[bold]t3d ▸[/bold] " if workspace.editing_raw else "\n[bold]you ▸[/bold] "
            try:
                raw = await asyncio.to_thread(console.input, prompt)
            except (KeyboardInterrupt, EOFError):
                console.print(f"\n[{BRAND['dim']}]Goodbye.[/{BRAND['dim']}]")
                break
            line = raw.strip()

            if workspace.editing_raw:
                if line == "/done":
                    _finish_raw_edit(workspace, "\n".join(raw_lines))
                elif line == "/cancel":
                    workspace.show_structure()
                    console.print(f"[{BRAND['dim']}]Raw edit discarded.[/{BRAND['dim']}]")
                else:
                    raw_lines.append(raw.rstrip())
                continue

            if not line:
                continue
            if line == "/edit":
                raw_lines.clear()
                workspace.edit_raw()
                console.print(_RAW_HELP)
                continue
            if line.startswith("/"):
                if not _chat_command(line, workspace, session):
                    break
                continue

            view = StreamingView(console, model=provider_list[0].model)
            try:
                await _run_turn(session, view, line)
            except (ValueError, RuntimeError, TimeoutError) as e:
                console.print(f"[red]Failed to generate response:[/red] {e}")
    finally:
        await session.cancel()
        workspace.close()


def _chat_command(line: str, workspace: BlueprintWorkspace, session: ChatSession) -> bool:
    """Handle a slash command. Returns False to leave the chat."""
    command, _, arg = line.partition(" ")
    arg = arg.strip()
    if command in ("/exit", "/quit"):
        return False
    if command == "/blueprint":
        console.print(workspace.text or f"[{BRAND['dim']}](empty)[/{BRAND['dim']}]")
    elif command == "/nodes":
        graph = workspace.structure()
        if graph is None:
            console.print("[yellow]No structural view of this blueprint.[/yellow]")
        else:
            console.print(_describe_nodes(graph))
    elif command == "/move":
        _move_node(workspace, arg)
    elif command == "/set":
        _set_node_property(workspace, arg)
    elif command == "/edit" and arg:
        _finish_raw_edit(workspace, _read_blueprint_or_none(Path(arg)), suspend=True)
    elif command == "/save" and arg:
        _write_blueprint(Path(arg), workspace.text)
    elif command == "/clear":
        session.clear()
        console.print(f"[{BRAND['dim']}]Conversation cleared.[/{BRAND['dim']}]")
    else:
        console.print(_CHAT_HELP)
    return True


def _read_blueprint_or_none(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Cannot read blueprint:[/red] {e}")
        return None


def _finish_raw_edit(
    workspace: BlueprintWorkspace, text: str | None, *, suspend: bool = False
) -> None:
    """Apply raw T3D text and return to the structural view."""
    if text is None:
        return
    if suspend:
        workspace.edit_raw()
    workspace.set_text(text.strip("\n"))
    workspace.show_structure()
    graph = workspace.structure()
    count = len(list(graph.walk())) if graph is not None else 0
    console.print(
        f"[{BRAND['green']}]Blueprint replaced[/{BRAND['green']}] ({count} objects)"
    )


def _find_node(workspace: BlueprintWorkspace, name: str) -> T3DObject | None:
    graph = workspace.structure()
    node = graph.find(name) if graph is not None else None
    if node is None:
        console.print(f"[red]No node named[/red] {name}")
    return node


def _move_node(workspace: BlueprintWorkspace, arg: str) -> None:
    parts = arg.split()
    try:
        name, x, y = parts[0], int(parts[1]), int(parts[2])
    except (IndexError, ValueError):
        console.print("Usage: /move NODE X Y")
        return
    node = _find_node(workspace, name)
    if node is not None:
        node.move(x, y)
        console.print(f"Moved {name} to {x},{y}")


def _set_node_property(workspace: BlueprintWorkspace, arg: str) -> None:
    parts = arg.split(maxsplit=2)
    if len(parts) != 3:
        console.print("Usage: /set NODE KEY VALUE")
        return
    name, key, value = parts
    node = _find_node(workspace, name)
    if node is not None:
        node.set_property(key, value)
        console.print(f"Set {name}.{key} = {value}", markup=False)


# ── bpstudio extract ─────────────────────────────────────────────


@app.command()
def extract(
    transcript: Path = typer.Argument(..., help="Saved assistant reply to scan."),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the blueprint here.",
    ),
) -> None:
    """Pull the complete blueprint out of a saved reply."""
    studio = _load_config()
    text = _read_blueprint(transcript)
    extractor = BlueprintExtractor(
        start_marker=studio.start_marker,
        end_marker=studio.end_marker,
        fence_tags=studio.fence_tags,
    )
    document = extractor.finalize(text)
    if document is None:
        console.print("[yellow]No complete blueprint found.[/yellow]")
        raise typer.Exit(1)
    if output is not None:
        _write_blueprint(output, document)
    else:
        console.print(document, markup=False, highlight=False)


# ── bpstudio providers ───────────────────────────────────────────


@providers_app.command("list")
def providers_list(providers: Path | None = _PROVIDERS_OPTION) -> None:
    """Show configured providers; the first one is active."""
    provider_list = _load_providers(providers)
    path = providers or default_providers_path()
    if not provider_list:
        console.print(f"[yellow]No providers configured.[/yellow] Add them to {path}")
        raise typer.Exit(1)

    table = Table(title="Configured Providers", show_lines=True)
    table.add_column("", width=1)
    table.add_column("Name", style="bold cyan")
    table.add_column("Kind")
    table.add_column("Model")
    table.add_column("Base URL", style="dim")
    table.add_column("API Key")

    for index, cfg in enumerate(provider_list):
        key = cfg.resolved_api_key()
        key_status = f"[green]{mask_key(key)}[/green]" if key else "[red]not set[/red]"
        table.add_row(
            "▸" if index == 0 else "",
            cfg.name,
            cfg.kind.value,
            cfg.model,
            cfg.base_url,
            key_status,
        )

    console.print(table)
    console.print(f"\n[dim]{path}[/dim]")


@providers_app.command("models")
def providers_models() -> None:
    """Show suggested models for each provider kind."""
    table = Table(title="Suggested Models")
    table.add_column("Kind", style="bold cyan")
    table.add_column("Models")
    for kind, models in PROVIDER_MODELS.items():
        table.add_row(kind.value, ", ".join(models))
    console.print(table)


@providers_app.command("keys")
def providers_keys() -> None:
    """Show which provider API keys are set."""
    keys = get_configured_keys()
    table = Table(title="API Keys")
    table.add_column("Provider", style="bold")
    table.add_column("Env Var")
    table.add_column("Status")
    for env_var, display, url in PROVIDERS:
        value = keys.get(env_var, "")
        status = f"[green]{mask_key(value)}[/green]" if value else f"[dim]not set · {url}[/dim]"
        table.add_row(display, env_var, status)
    console.print(table)


@providers_app.command("test")
def providers_test(providers: Path | None = _PROVIDERS_OPTION) -> None:
    """Verify the active provider's key by listing its models."""
    provider_list = _load_providers(providers)
    studio = _load_config()
    try:
        cfg = active_provider(provider_list)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    console.print(f"Testing [bold]{cfg.name}[/bold] ({cfg.base_url})...")
    streamer = StreamingProvider(cfg, studio=studio)
    try:
        with console.status("[bold blue]Fetching models...", spinner="dots"):
            models = asyncio.run(streamer.list_models())
    except (ValueError, RuntimeError) as e:
        console.print(f"[red]Failed:[/red] {e}")
        raise typer.Exit(1) from None

    console.print(f"[green]Verified![/green] {len(models)} models available.")
    if cfg.model not in models and models:
        console.print(f"[yellow]Configured model '{cfg.model}' is not in the list.[/yellow]")


# ── bpstudio config ──────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show current studio configuration."""
    config = _load_config()

    table = Table(title="Studio Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Debounce Delay", f"{config.debounce_delay:g}s")
    table.add_row("Request Timeout", f"{config.request_timeout:g}s")
    table.add_row("Anthropic max_tokens", str(config.anthropic_max_tokens))
    table.add_row("Anthropic Version", config.anthropic_version)
    table.add_row("Start Marker", config.start_marker)
    table.add_row("End Marker", config.end_marker)
    table.add_row("Fence Tags", ", ".join(config.fence_tags))
    table.add_row("Providers File", str(default_providers_path()))

    console.print(table)
