"""Command line entry point for nmconnect.

Usage:
    nmconnect locate com.example.host
    nmconnect locate com.example.host --scope firefox
    nmconnect send com.example.host '{"action": "ping"}'
    nmconnect send com.example.host '"hi"' --replies 2 --timeout 5
    nmconnect --json-errors locate com.example.host
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from functools import reduce
from typing import Any

import click
from returns.io import IOFailure, IOResult, IOSuccess
from returns.unsafe import unsafe_perform_io

from nmconnect.connector import NativeConnector, locate
from nmconnect.errors import NativeMessagingError
from nmconnect.types import ConnectionSettings, SearchLocation

_SCOPE_CHOICES = ["all", "firefox", "chrome", "chromium", "vivaldi"]


def _build_scope(names: tuple[str, ...]) -> SearchLocation:
    """Combine --scope values into one SearchLocation mask."""
    if not names:
        return SearchLocation.ALL
    return reduce(
        lambda acc, name: acc | SearchLocation[name.upper()],
        names,
        SearchLocation(0),
    )


def _parse_json(
    _ctx: click.Context,
    _param: click.Parameter,
    value: str,
) -> Any:  # noqa: ANN401
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        msg = f"not valid JSON: {exc}"
        raise click.BadParameter(msg) from exc


def _fail(err: NativeMessagingError) -> None:
    if click.get_current_context().find_root().params.get("json_errors"):
        click.echo(json.dumps(err.to_dict(), ensure_ascii=False), err=True)
    else:
        click.echo(f"Error: {err.error_type}: {err.message}", err=True)
    sys.exit(1)


async def exchange(
    app_name: str,
    scope: SearchLocation,
    message: Any,  # noqa: ANN401
    replies: int,
    settings: ConnectionSettings,
) -> IOResult[list[Any], NativeMessagingError]:
    """Connect, send message, collect replies, disconnect."""
    connector_result = NativeConnector.create(app_name, scope)
    if isinstance(connector_result, IOFailure):
        return connector_result
    connector = unsafe_perform_io(connector_result.unwrap())

    connect_result = await connector.connect(settings)
    if isinstance(connect_result, IOFailure):
        return connect_result

    received: list[Any] = []
    async with unsafe_perform_io(connect_result.unwrap()) as connection:
        send_result = await connection.send(message)
        if isinstance(send_result, IOFailure):
            return send_result
        for _ in range(replies):
            reply_result = await connection.receive()
            if isinstance(reply_result, IOFailure):
                return reply_result
            received.append(unsafe_perform_io(reply_result.unwrap()))
    return IOSuccess(received)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
@click.option(
    "--json-errors",
    is_flag=True,
    help="Report failures as one JSON object on stderr",
)
def main(verbose: bool, json_errors: bool) -> None:  # noqa: ARG001
    """Talk to native messaging companions."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stderr,
        )


@main.command("locate")
@click.argument("app_name")
@click.option(
    "--scope",
    multiple=True,
    type=click.Choice(_SCOPE_CHOICES, case_sensitive=False),
    help="Browser family to search (repeatable, default: all)",
)
def locate_command(app_name: str, scope: tuple[str, ...]) -> None:
    """Print the companion executable and browser family for APP_NAME."""
    result = locate(app_name, _build_scope(scope))
    if isinstance(result, IOFailure):
        _fail(unsafe_perform_io(result.failure()))
    path, app_type = unsafe_perform_io(result.unwrap())
    click.echo(f"{path}\t{app_type.value}")


@main.command("send")
@click.argument("app_name")
@click.argument("message", callback=_parse_json)
@click.option(
    "--scope",
    multiple=True,
    type=click.Choice(_SCOPE_CHOICES, case_sensitive=False),
    help="Browser family to search (repeatable, default: all)",
)
@click.option(
    "--timeout",
    default=10.0,
    type=click.FloatRange(min=0),
    help="Seconds to wait for each reply (default: 10)",
)
@click.option(
    "--replies",
    default=1,
    type=click.IntRange(min=0),
    help="Number of replies to wait for (default: 1)",
)
def send_command(
    app_name: str,
    message: Any,  # noqa: ANN401
    scope: tuple[str, ...],
    timeout: float,
    replies: int,
) -> None:
    """Send MESSAGE (JSON) to APP_NAME and print the replies."""
    settings = ConnectionSettings(receive_timeout=timeout)
    result = asyncio.run(
        exchange(app_name, _build_scope(scope), message, replies, settings),
    )
    if isinstance(result, IOFailure):
        _fail(unsafe_perform_io(result.failure()))
    for reply in unsafe_perform_io(result.unwrap()):
        click.echo(json.dumps(reply, ensure_ascii=False))


if __name__ == "__main__":
    main()
