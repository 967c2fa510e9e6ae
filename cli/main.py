"""
CLI entry point for the decision bridge.

Usage:
    python -m cli.main <command> [args...]

Or if installed as console script:
    decision-bridge <command> [args...]
"""
from __future__ import annotations

import logging
from typing import Optional

import click
from colorama import init as colorama_init

from bridge_config import (
    BridgeConfig,
    configure_logging,
    emit_early_env_warnings,
    load_bridge_config_from_env,
    load_environment,
)
from cli.output import format_decision, format_settings, print_result


def get_config(ctx: click.Context) -> BridgeConfig:
    """Get or load the bridge configuration."""
    if "config" not in ctx.obj:
        load_environment()
        ctx.obj["config"] = load_bridge_config_from_env()
        emit_early_env_warnings()
    return ctx.obj["config"]


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Decision Bridge CLI - LLM trade decisions for a trading client."""
    configure_logging(verbose)
    colorama_init()
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to BRIDGE_HOST)")
@click.option("--port", type=int, default=None, help="Listening port (defaults to PORT)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Run the HTTP bridge server."""
    from server import run_server

    run_server(get_config(ctx), host=host, port=port)


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--no-color", is_flag=True, help="Print without ANSI colors")
@click.pass_context
def decide(ctx: click.Context, source, no_color: bool) -> None:
    """Run one market context (file or stdin) through the bridge locally."""
    from core.handler import BridgeHandler

    market_context = source.read()
    handler = BridgeHandler(get_config(ctx))
    result = handler.process({"market_data": market_context}, origin="cli")

    logging.debug("Local decision finished in state %s", result.state.value)
    print_result(format_decision(result.body, color=not no_color), success=result.status_code == 200)


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the effective configuration (secrets masked)."""
    print_result(format_settings(get_config(ctx).describe()))


if __name__ == "__main__":
    cli()
