"""vampsync CLI — run the server, inspect versions, watch a sync session.

Usage:
    vampsync serve                                   # Run the API + WebSocket server
    vampsync token admin                             # Mint a dev session token
    vampsync versions                                # Print the version snapshot
    vampsync bump planner_assignments musicians      # Bump groups and notify clients
    vampsync notify --message "Maintenance at 6pm"   # Broadcast a system message
    vampsync notify --refresh all                    # Ask clients to drop cached data
    vampsync watch --path /events/planner            # Run a sync session, log outcomes
    vampsync reload-url "/planner?month=5&year=2025" # Show a forced-reload target
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import random
import sys
import time
from typing import Optional

import click
import httpx

from vampsync import __version__
from vampsync.config import settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _api_url() -> str:
    return settings.api_url.rstrip("/")


def _token(token: Optional[str]) -> Optional[str]:
    return token or os.environ.get("VAMPSYNC_TOKEN")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the sync server."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0, headers=headers)


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. Click CliRunner inside an async test)
    by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _require_token(token: Optional[str]) -> str:
    tok = _token(token)
    if not tok:
        click.secho(
            "Error: --token required (or set VAMPSYNC_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _outcome_color(outcome: str) -> str:
    colors = {
        "baseline": "cyan",
        "unchanged": "white",
        "invalidated": "yellow",
        "reloaded": "magenta",
        "failed": "red",
        "skipped": "white",
    }
    return colors.get(outcome, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="vampsync")
@click.option("--log-level", default=None, help="debug, info, warning, error")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
def main(log_level: Optional[str], json_logs: bool):
    """VAMP sync — data versions, push notifications and client reconciliation."""
    from vampsync.log import configure_logging

    configure_logging(log_level or settings.log_level, json=json_logs or settings.log_json)


# ---------------------------------------------------------------------------
# vampsync serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", default=None, type=int, help="Bind port")
@click.option("--reload", "auto_reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], auto_reload: bool):
    """Run the versions API and the /ws push channel."""
    import uvicorn

    uvicorn.run(
        "vampsync.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=auto_reload,
    )


# ---------------------------------------------------------------------------
# vampsync token
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id")
@click.option("--minutes", default=None, type=int, help="Lifetime in minutes")
def token(user_id: str, minutes: Optional[int]):
    """Mint a session token for USER_ID (development helper)."""
    from vampsync.auth.jwt import create_session_token

    click.echo(create_session_token(user_id, expires_minutes=minutes))


# ---------------------------------------------------------------------------
# vampsync versions
# ---------------------------------------------------------------------------


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def versions(as_json: bool):
    """Print the server's current version snapshot."""
    _run(_versions_impl(as_json))


async def _versions_impl(as_json: bool):
    async with _client() as c:
        r = await c.get("/api/versions")
        r.raise_for_status()
        snapshot = r.json()

    if as_json:
        click.echo(json.dumps(snapshot, indent=2, sort_keys=True))
        return
    if not snapshot:
        click.echo("No versions recorded yet.")
        return

    click.secho(f"{'Entity group':30s}  Version", bold=True)
    click.echo("-" * 40)
    for key in sorted(snapshot):
        click.echo(f"{key:30s}  {snapshot[key]}")


# ---------------------------------------------------------------------------
# vampsync bump
# ---------------------------------------------------------------------------


@main.command()
@click.argument("keys", nargs=-1, required=True)
@click.option("--token", "-t", help="Session token (or set VAMPSYNC_TOKEN)")
def bump(keys: tuple[str, ...], token: Optional[str]):
    """Record a change to each entity group in KEYS and notify clients."""
    _run(_bump_impl(keys, _require_token(token)))


async def _bump_impl(keys: tuple[str, ...], token: str):
    async with _client(token) as c:
        for key in keys:
            r = await c.post(f"/api/versions/{key}/bump")
            r.raise_for_status()
            body = r.json()
            click.echo(f"{body['key']:30s}  → {click.style(str(body['version']), fg='green')}")


# ---------------------------------------------------------------------------
# vampsync notify
# ---------------------------------------------------------------------------


@main.command()
@click.option("--message", "-m", help="System message text")
@click.option("--refresh", "-r", "entity", help='Entity group to refresh, or "all"')
@click.option("--token", "-t", help="Session token (or set VAMPSYNC_TOKEN)")
def notify(message: Optional[str], entity: Optional[str], token: Optional[str]):
    """Broadcast a system message or a refresh request."""
    if bool(message) == bool(entity):
        click.secho("Error: give exactly one of --message or --refresh", fg="red", err=True)
        sys.exit(1)
    if message:
        body = {"type": "system-message", "message": message}
    else:
        body = {"type": "refresh-required", "entity": entity}
    _run(_notify_impl(body, _require_token(token)))


async def _notify_impl(body: dict, token: str):
    async with _client(token) as c:
        r = await c.post("/api/notifications", json=body)
        r.raise_for_status()
        sent = r.json()
    click.secho(f"Sent {sent['type']} at {sent['timestamp']}", fg="green")


# ---------------------------------------------------------------------------
# vampsync watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--path", "view_path", default="/events/planner", help="View path the session pretends to show")
@click.option("--token", "-t", help="Session token (or set VAMPSYNC_TOKEN)")
@click.option("--ephemeral", is_flag=True, help="Don't persist versions between runs")
def watch(view_path: str, token: Optional[str], ephemeral: bool):
    """Run a sync session and log every reconciliation outcome.

    Forced reloads are printed instead of performed; the "view" then
    continues at the reload target, like a browser after navigation.
    """
    try:
        _run(_watch_impl(view_path, _require_token(token), ephemeral))
    except KeyboardInterrupt:
        click.echo()


async def _watch_impl(view_path: str, token: str, ephemeral: bool):
    from vampsync.client.session import SyncSession
    from vampsync.client.storage import MemoryStateStorage

    location = {"current": view_path}

    def navigate(target: str) -> None:
        click.secho(f"  hard reload → {target}", fg="magenta")
        location["current"] = target

    session = SyncSession.from_settings(
        token,
        navigate=navigate,
        location=lambda: location["current"],
        storage=MemoryStateStorage() if ephemeral else None,
    )
    session.on_connection_status(
        lambda connected, reconnecting: click.secho(
            f"  channel: {'connected' if connected else 'reconnecting' if reconnecting else 'disconnected'}",
            fg="green" if connected else "yellow",
        )
    )
    session.on_system_message(lambda text: click.secho(f"  system: {text}", fg="cyan"))

    session.reconciler.add_listener(
        lambda outcome: click.echo(
            f"  pass: {click.style(outcome.value, fg=_outcome_color(outcome.value))}"
        )
    )

    click.secho(f"Watching {_api_url()} as view {view_path} (Ctrl+C to stop)", bold=True)
    session.navigate_to(view_path)
    try:
        await asyncio.Event().wait()
    finally:
        await session.aclose()


# ---------------------------------------------------------------------------
# vampsync reload-url
# ---------------------------------------------------------------------------


@main.command("reload-url")
@click.argument("location")
def reload_url(location: str):
    """Print the forced-reload target for LOCATION."""
    from vampsync.client.reload import CriticalReloadTrigger, build_reload_location

    if CriticalReloadTrigger.is_post_reload(location):
        click.secho("Location already carries a freshness token; no reload would be forced.", fg="yellow")
    click.echo(build_reload_location(location, int(time.time() * 1000), random.randrange(10000)))


if __name__ == "__main__":
    main()
