"""Interactive Typer-based CLI driving a ConnectionManager."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Awaitable, Callable, Dict, Optional

import typer
from mcp import types

from mcplink.config import ClientConfig, default_uri_for, detect_transport_type, load_client_config
from mcplink.domain.errors import ConfigurationError, McpLinkError, TransportError
from mcplink.domain.events import ConnectionStateChanged, Reconnecting
from mcplink.domain.types import ConnectionRequest, TransportType
from mcplink.infrastructure.mcp.connection import (
    ConnectionManager,
    ExponentialBackoffStrategy,
    connect_with_backoff,
)
from mcplink.logger import get_logger, setup_logger
from mcplink.utils import format_time_hhmmss

logger = get_logger("cli")
app = typer.Typer()

CommandHandler = Callable[[ConnectionManager, str], Awaitable[None]]


async def _handle_list(manager: ConnectionManager, _: str) -> None:
    snapshot = await manager.get_primitives()
    if not snapshot.tools:
        typer.echo("No tools available.")
        return
    typer.echo("Available tools:")
    for tool in snapshot.tools:
        typer.echo(f"  - {tool.name}: {tool.description or ''}".rstrip(": "))


async def _handle_call(manager: ConnectionManager, payload: str) -> None:
    parts = payload.split(maxsplit=1)
    tool_name = parts[0] if parts else ""
    if not tool_name:
        typer.echo("❌ Please specify a tool name.")
        return

    arguments: dict[str, object] = {}
    if len(parts) > 1:
        try:
            arguments = json.loads(parts[1])
        except json.JSONDecodeError:
            typer.echo("❌ Invalid JSON arguments.")
            return

    outcome = await manager.call_tool(tool_name, arguments)
    if not outcome.ok:
        kind = outcome.error_kind.value if outcome.error_kind else "unknown"
        typer.echo(f"❌ {kind} error: {outcome.message}")
        if outcome.result is not None:
            _render_tool_result(outcome.result)
        return

    typer.echo("Tool result:")
    _render_tool_result(outcome.result)


async def _handle_prompts(manager: ConnectionManager, _: str) -> None:
    snapshot = await manager.get_primitives()
    if not snapshot.prompts:
        typer.echo("No prompts available.")
        return
    typer.echo("Available prompts:")
    for prompt in snapshot.prompts:
        arg_names = ", ".join(str(arg.get("name")) for arg in prompt.arguments)
        typer.echo(f"  - {prompt.name}({arg_names})")


async def _handle_resources(manager: ConnectionManager, _: str) -> None:
    snapshot = await manager.get_primitives()
    if not snapshot.resources:
        typer.echo("No resources available.")
        return
    typer.echo("Available resources:")
    for resource in snapshot.resources:
        typer.echo(f"  - {resource.uri} ({resource.name})")


async def _handle_refresh(manager: ConnectionManager, _: str) -> None:
    snapshot = await manager.get_primitives(force_refresh=True)
    typer.echo(
        f"Refreshed: {len(snapshot.tools)} tools, {len(snapshot.resources)} resources, "
        f"{len(snapshot.prompts)} prompts"
    )


async def _handle_status(manager: ConnectionManager, _: str) -> None:
    info = manager.connection_info()
    typer.echo(f"State:       {info['state']}")
    typer.echo(f"Server:      {info['uri'] or '-'} ({info['transport_type'] or '-'})")
    typer.echo(f"Failures:    {info['consecutive_failures']}/{info['max_consecutive_failures']}")
    if info["last_error"]:
        typer.echo(f"Last error:  {info['last_error']} at {format_time_hhmmss(info['last_error_at'])}")
    typer.echo(f"Transports:  {', '.join(info['available_transports'])}")


async def _handle_reconnect(manager: ConnectionManager, payload: str) -> None:
    uri = payload.strip() or None
    await manager.force_reconnect(uri)
    typer.echo(f"✅ Reconnected to {manager.current_request.uri}")


COMMANDS: Dict[str, CommandHandler] = {
    "list": _handle_list,
    "call": _handle_call,
    "prompts": _handle_prompts,
    "resources": _handle_resources,
    "refresh": _handle_refresh,
    "status": _handle_status,
    "reconnect": _handle_reconnect,
}


def _sanitize_command(text: str) -> str:
    """Normalize command text by removing carriage returns and trimming whitespace."""
    return text.replace("\r", "").strip()


def _read_command(prompt: str) -> str:
    typer.echo(prompt, nl=False)
    sys.stdout.flush()

    line = sys.stdin.readline()
    if line == "":
        raise EOFError
    return _sanitize_command(line)


async def _dispatch_command(manager: ConnectionManager, command: str) -> bool:
    """Run one command line. Returns False when the session should end."""
    command = _sanitize_command(command)

    if not command:
        return True

    if command == "quit":
        return False

    parts = command.split(maxsplit=1)
    handler = COMMANDS.get(parts[0])
    if handler is None:
        typer.echo("❌ Unknown command. Try 'list', 'call <tool>', 'status', or 'quit'.")
        return True

    payload = _sanitize_command(parts[1]) if len(parts) > 1 else ""
    try:
        await handler(manager, payload)
    except McpLinkError as exc:
        typer.echo(f"❌ {exc.kind.value} error: {exc.message}")
    return True


async def _interactive_loop(manager: ConnectionManager) -> None:
    typer.echo("")
    typer.echo("🎯 Interactive MCP Client")
    typer.echo("Commands:")
    typer.echo("  list                    List available tools")
    typer.echo("  call <tool> [json]      Call a tool with optional JSON args")
    typer.echo("  prompts                 List prompts")
    typer.echo("  resources               List resources")
    typer.echo("  refresh                 Refetch tools, resources and prompts")
    typer.echo("  status                  Show connection state and failures")
    typer.echo("  reconnect [url]         Reset failures and reconnect")
    typer.echo("  quit                    Exit the client")
    typer.echo("")

    loop = asyncio.get_running_loop()
    while True:
        try:
            command = await loop.run_in_executor(None, _read_command, "mcp> ")
        except (KeyboardInterrupt, EOFError):
            typer.echo("\n👋 Goodbye!")
            break

        if not await _dispatch_command(manager, command):
            break


def _render_tool_result(result: object) -> None:
    content = getattr(result, "content", None)
    if not content:
        typer.echo(str(result))
        return

    for item in content:
        if isinstance(item, types.TextContent):
            typer.echo(item.text)
        else:
            typer.echo(repr(item))


def _resolve_request(config: ClientConfig, server_url: Optional[str], transport_type: Optional[str]) -> ConnectionRequest:
    try:
        transport = TransportType(transport_type) if transport_type else None
    except ValueError as exc:
        choices = ", ".join(t.value for t in TransportType)
        raise ConfigurationError(f"Unknown transport '{transport_type}' (choose from: {choices})") from exc

    if server_url:
        transport = transport or detect_transport_type(server_url)
        uri = server_url
    elif transport is not None and transport != config.default_transport:
        uri = default_uri_for(transport)
    else:
        transport = config.default_transport
        uri = config.default_uri

    return ConnectionRequest(uri=uri, transport_type=transport, plugin_config=config.plugins.get(transport, {}))


def run_cli(config: ClientConfig, request: ConnectionRequest, retries: int) -> None:
    def on_state(event: ConnectionStateChanged) -> None:
        logger.info(f"Connection state: {event.previous_state.value} -> {event.state.value}")

    def on_reconnecting(event: Reconnecting) -> None:
        typer.echo(f"⏳ Retry {event.attempt}/{event.max_attempts} in {event.next_retry_delay:.1f}s")

    async def runner() -> None:
        async with ConnectionManager(config) as manager:
            manager.event_bus.subscribe(ConnectionStateChanged, on_state)
            manager.event_bus.subscribe(Reconnecting, on_reconnecting)
            try:
                typer.echo(f"🔌 Connecting to {request.uri} via {request.transport_type.value}...")
                await connect_with_backoff(manager, request, ExponentialBackoffStrategy(max_attempts=retries))
                typer.echo("✅ Connected")
                await _interactive_loop(manager)
            except (ConfigurationError, TransportError) as exc:
                typer.echo(f"❌ Error: {exc}")
                logger.error(f"Could not connect: {exc}")
            except Exception as exc:
                typer.echo(f"❌ Error: {exc}")
                logger.exception("Fatal error in CLI")

    asyncio.run(runner())


@app.command()
def main(
    server_url: Optional[str] = typer.Option(
        None,
        "--server-url",
        envvar="MCPLINK_SERVER_URL",
        help="MCP server endpoint (defaults to the configured server)",
    ),
    transport_type: Optional[str] = typer.Option(
        None,
        "--transport-type",
        envvar="MCPLINK_TRANSPORT_TYPE",
        help="Transport to use: sse, websocket or streamable-http",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to a JSON configuration file",
    ),
    retries: int = typer.Option(3, "--retries", min=0, help="Connection retries before giving up"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Also log to the console"),
) -> None:
    """Connect to an MCP server and launch the interactive CLI."""
    try:
        config = load_client_config(config_path)
        setup_logger(log_level=config.global_settings.log_level, console_output=verbose)
        request = _resolve_request(config, server_url, transport_type)
    except ConfigurationError as exc:
        typer.echo(f"❌ {exc.message}")
        raise typer.Exit(code=2)

    run_cli(config, request, retries)


if __name__ == "__main__":
    app()
