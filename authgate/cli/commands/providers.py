"""CLI commands for OAuth providers."""

from __future__ import annotations

import click

from authgate.cli.client import call
from authgate.cli.output import console, providers_table


@click.group("providers")
def providers_cmd() -> None:
    """Inspect configured OAuth providers."""


@providers_cmd.command("list")
@click.pass_context
def providers_list(ctx: click.Context) -> None:
    """List providers that have client credentials configured."""
    data = call(ctx, "GET", "/api/v1/auth/providers")
    console.print(providers_table(data["items"]))
