"""
proxyforward CLI entry point.

Usage:
    proxyforward [OPTIONS] TUNNEL...

Each TUNNEL is ``port:host:hostport``: connections to local ``port`` are
forwarded to ``host:hostport`` through the HTTP proxy's CONNECT method.

Example:
    # SSH to ssh.example.com:443 through a corporate proxy
    proxyforward 2222:ssh.example.com:443 --proxy proxy.example.com:8080
    ssh -p 2222 user@127.0.0.1
"""

import asyncio
import signal
from typing import Annotated

import typer

from proxyforward import __version__
from proxyforward.cli.output import (
    console,
    print_error,
    print_success,
    print_warning,
)
from proxyforward.config import ForwardConfig, build_config
from proxyforward.errors import BindError, ConfigurationError
from proxyforward.models.tunnel import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_USER_AGENT,
)
from proxyforward.tunnel.engine import Engine
from proxyforward.utils.logger import configure_logging, level_from_verbosity

app = typer.Typer(
    name="proxyforward",
    help="Forward local TCP ports through an HTTP CONNECT proxy",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool):
    if value:
        console.print(f"proxyforward v{__version__}")
        raise typer.Exit()


def _print_banner(config: ForwardConfig) -> None:
    """Show the active tunnels and warn when they are reachable from the network."""
    for spec in config.tunnels:
        print_success(
            f"Forwarding [cyan]{spec.listen_host}:{spec.listen_port}[/cyan] "
            f"[dim]→[/dim] [yellow]{spec.target}[/yellow] "
            f"[dim]via {spec.proxy}[/dim]"
        )
    if not config.local_only:
        print_warning(
            "Tunnels accept connections from any host; use --local-only "
            "to restrict them to localhost."
        )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")


async def _run_engine(config: ForwardConfig) -> None:
    """Start every tunnel and run until SIGINT/SIGTERM."""
    engine = Engine.from_config(config)
    await engine.start()

    loop = asyncio.get_running_loop()
    shutdown_tasks: set[asyncio.Task] = set()

    def _request_shutdown():
        task = asyncio.ensure_future(engine.shutdown())
        shutdown_tasks.add(task)
        task.add_done_callback(shutdown_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows event loops: Ctrl+C arrives as KeyboardInterrupt instead
            pass

    _print_banner(config)
    await engine.serve_forever()


@app.command()
def forward(
    tunnels: Annotated[
        list[str],
        typer.Argument(help="Tunnels as port:host:hostport", show_default=False),
    ],
    proxy: Annotated[
        str,
        typer.Option(
            "--proxy",
            "-p",
            help="HTTP proxy as host[:port] (default port 8080)",
            envvar="PROXYFORWARD_PROXY",
        ),
    ],
    proxy_auth: Annotated[
        str | None,
        typer.Option(
            "--proxy-auth",
            "-a",
            help="Proxy credentials as user:pass (Basic auth)",
            envvar="PROXYFORWARD_PROXY_AUTH",
        ),
    ] = None,
    local_only: Annotated[
        bool,
        typer.Option("--local-only", "-l", help="Only accept connections from localhost"),
    ] = False,
    user_agent: Annotated[
        str,
        typer.Option("--user-agent", "-U", help="User-Agent sent to the proxy"),
    ] = DEFAULT_USER_AGENT,
    handshake_timeout: Annotated[
        float,
        typer.Option(help="Seconds to wait for the proxy's CONNECT response"),
    ] = DEFAULT_HANDSHAKE_TIMEOUT,
    connect_timeout: Annotated[
        float,
        typer.Option(help="Seconds to wait for the TCP connection to the proxy"),
    ] = DEFAULT_CONNECT_TIMEOUT,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity (-vvv for full)"),
    ] = 0,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
):
    """
    Forward local ports to remote hosts through an HTTP proxy.

    Each accepted connection is tunnelled with [bold]CONNECT host:port[/bold];
    the proxied bytes are not inspected or encrypted.
    """
    log_level = level_from_verbosity(verbose)
    configure_logging(log_level)

    try:
        config = build_config(
            tunnels,
            proxy,
            proxy_auth=proxy_auth,
            local_only=local_only,
            user_agent=user_agent,
            handshake_timeout=handshake_timeout,
            connect_timeout=connect_timeout,
            log_level=log_level,
        )
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    try:
        asyncio.run(_run_engine(config))
    except BindError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass

    console.print("[dim]Stopped.[/dim]")


def main():
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
