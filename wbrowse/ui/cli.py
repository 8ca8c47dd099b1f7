"""Main CLI entry point - one subcommand per session operation.

Every command that touches a session goes through the supervisor first, so
the daemon is spawned on demand. Heavy imports (Playwright) stay in the
daemon; the only command that loads them here is ``cookies grab``.
"""

import asyncio
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from wbrowse.core.configs import get_daemon_config
from wbrowse.core.errors import BrowseError, RemoteError, ValidationError
from wbrowse.core.models import Cookie
from wbrowse.daemon.client import DaemonClient
from wbrowse.daemon.supervisor import SessionSupervisor
from wbrowse.ui.output import UIManager

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="wbrowse - drive a persistent browser session from the shell.",
)
session_app = typer.Typer(no_args_is_help=True, help="Create, list and delete sessions.")
tab_app = typer.Typer(no_args_is_help=True, help="Open, close and switch tabs.")
network_app = typer.Typer(no_args_is_help=True, help="Capture network traffic of the current tab.")
cookies_app = typer.Typer(no_args_is_help=True, help="Collect cookies for later sessions.")

app.add_typer(session_app, name="session")
app.add_typer(tab_app, name="tab")
app.add_typer(network_app, name="network")
app.add_typer(cookies_app, name="cookies")

ui = UIManager()
console = Console()


# ============================================================================
# Shared Setup
# ============================================================================

@app.callback()
def main(
    ctx: typer.Context,
    session: str = typer.Option("default", "--session", "-s", help="Session to use"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Spawn the daemon with a visible browser"),
) -> None:
    ctx.obj = {"session": session, "debug": debug}


def _fail(error: Exception) -> None:
    ui.error(f"Error: {error}")
    raise typer.Exit(1)


@contextmanager
def _session_client(ctx: typer.Context) -> Iterator[DaemonClient]:
    """
    Ensure the session's daemon is up and yield a connected client.

    Any BrowseError (spawn, transport or daemon-side) exits with code 1.
    """
    name = ctx.obj["session"]
    try:
        timeout = get_daemon_config().request_timeout
        SessionSupervisor().ensure_session(name, debug=ctx.obj["debug"])
        with DaemonClient(name, timeout=timeout) as client:
            yield client
    except (BrowseError, ValueError) as e:
        _fail(e)


def _load_cookies(path: Path) -> List[Cookie]:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read cookies from {path}: {e}") from e
    if not isinstance(data, list):
        raise ValidationError(f"Cookie file {path} must contain a JSON list")
    return [Cookie.from_dict(item) for item in data]


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2))


# ============================================================================
# Session commands
# ============================================================================

@session_app.command("list")
def session_list() -> None:
    """List sessions and whether their daemon is running."""
    try:
        sessions = SessionSupervisor().list_sessions()
    except BrowseError as e:
        _fail(e)

    if not sessions:
        ui.dim("No sessions")
        return

    table = Table(title="Sessions", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Status", justify="right")
    for entry in sessions:
        status = "[green]running[/green]" if entry["running"] else "[dim]stopped[/dim]"
        table.add_row(entry["name"], status)
    console.print(table)


@session_app.command("create")
def session_create(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Session name (defaults to --session)"),
    debug: bool = typer.Option(False, "--debug", help="Show the browser window"),
    cookies: Optional[Path] = typer.Option(None, "--cookies", help="JSON cookie file to load"),
) -> None:
    """
    Start a session's daemon, optionally seeding cookies.

    Example: wb session create work --cookies cookies.json
    """
    name = name or ctx.obj["session"]
    ctx.obj["session"] = name
    ctx.obj["debug"] = ctx.obj["debug"] or debug

    try:
        cookie_list = _load_cookies(cookies) if cookies else []
    except BrowseError as e:
        _fail(e)

    with _session_client(ctx) as client:
        if cookie_list:
            client.add_cookies(cookie_list)
            ui.info(f"Loaded {len(cookie_list)} cookies")
    ui.success(f"Session {name} ready")


@session_app.command("delete")
def session_delete(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Session name (defaults to --session)"),
) -> None:
    """Stop a session's daemon and remove all its data."""
    name = name or ctx.obj["session"]
    try:
        SessionSupervisor().delete_session(name)
    except BrowseError as e:
        _fail(e)
    ui.success(f"Session {name} deleted")


# ============================================================================
# Page commands
# ============================================================================

@app.command()
def runtime(ctx: typer.Context) -> None:
    """Seconds since the session started."""
    with _session_client(ctx) as client:
        typer.echo(f"{client.runtime_seconds():.2f}")


@app.command()
def dump(
    ctx: typer.Context,
    html: bool = typer.Option(False, "--html", help="Raw HTML instead of text"),
    offset: int = typer.Option(0, "--offset", min=0, help="Character offset to start from"),
) -> None:
    """
    Print the current tab's content, one chunk at a time.

    Example: wb dump --offset 8196
    """
    with _session_client(ctx) as client:
        typer.echo(client.dump(html=html, offset=offset))


@app.command()
def go(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to open in the current tab"),
) -> None:
    """Navigate the current tab."""
    with _session_client(ctx) as client:
        client.go(url)
    ui.success(f"Navigated to {url}")


@app.command()
def interact(
    ctx: typer.Context,
    instructions: str = typer.Argument(..., help="What to do on the page"),
) -> None:
    """
    Perform one natural-language action on the current tab.

    Example: wb interact "click the sign in button"
    """
    with _session_client(ctx) as client:
        result = client.interact(instructions)
    ui.description(result["description"])
    ui.dim(result["url"])


# ============================================================================
# Tab commands
# ============================================================================

@tab_app.command("new")
def tab_new(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab name"),
    url: str = typer.Argument(..., help="URL to open"),
) -> None:
    """Open a named tab."""
    with _session_client(ctx) as client:
        tab = client.new_tab(name, url)
    ui.success(f"Opened tab {name} at {tab['url']}")


@tab_app.command("close")
def tab_close(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab name"),
) -> None:
    """Close a tab."""
    with _session_client(ctx) as client:
        client.close_tab(name)
    ui.success(f"Closed tab {name}")


@tab_app.command("list")
def tab_list(ctx: typer.Context) -> None:
    """List open tabs, marking the current one."""
    with _session_client(ctx) as client:
        names = client.list_tabs()
        try:
            current = client.get_current_tab()["tabName"]
        except RemoteError:
            current = None

    if not names:
        ui.dim("No open tabs")
        return

    table = Table(show_header=True)
    table.add_column("Tab", style="cyan")
    table.add_column("Current", justify="center")
    for name in names:
        table.add_row(name, "*" if name == current else "")
    console.print(table)


@tab_app.command("current")
def tab_current(ctx: typer.Context) -> None:
    """Show the current tab and its action history as JSON."""
    with _session_client(ctx) as client:
        tab = client.get_current_tab()
    typer.echo(json.dumps(tab, indent=2))


@tab_app.command("set-current")
def tab_set_current(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tab name"),
) -> None:
    """Make a tab the current one."""
    with _session_client(ctx) as client:
        client.set_current_tab(name)
    ui.success(f"Current tab: {name}")


# ============================================================================
# Network capture
# ============================================================================

@network_app.command("start")
def network_start(ctx: typer.Context) -> None:
    """Start recording requests and responses of the current tab."""
    with _session_client(ctx) as client:
        client.start_network_record()
    ui.success("Network capture started")


def _print_events(events: List[Dict[str, Any]]) -> None:
    table = Table(title=f"{len(events)} network events", show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Method/Status", style="yellow")
    table.add_column("URL", overflow="fold")
    for event in events:
        options = event.get("options", {})
        detail = options.get("method") or str(options.get("status", ""))
        table.add_row(str(event.get("requestId", "")), event["type"], detail, options.get("url", ""))
    console.print(table)


@network_app.command("stop")
def network_stop(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write events as JSON"),
) -> None:
    """Stop recording and print or save the captured events."""
    with _session_client(ctx) as client:
        events = client.stop_network_record()

    if output:
        _write_json(output, events)
        ui.success(f"Wrote {len(events)} events to {output}")
    else:
        _print_events(events)


# ============================================================================
# Cookies
# ============================================================================

@cookies_app.command("grab")
def cookies_grab(
    output: Path = typer.Option(Path("cookies.json"), "--output", "-o", help="Cookie file to write"),
) -> None:
    """
    Open a browser, let you log in, and save its cookies when you close it.

    Example: wb cookies grab -o work.json && wb session create --cookies work.json
    """
    # Lazy import: Playwright is only needed here
    from wbrowse.engine.playwright_engine import grab_cookies

    ui.info("Log in as needed, then close the browser window")
    try:
        count = asyncio.run(grab_cookies(output))
    except Exception as e:
        _fail(e)
    ui.success(f"Saved {count} cookies to {output}")


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
