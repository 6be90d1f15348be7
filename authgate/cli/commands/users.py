"""CLI commands for user administration (requires the admin key)."""

from __future__ import annotations

import click

from authgate.cli.client import call
from authgate.cli.output import console, user_detail, users_table

admin_key_option = click.option(
    "--admin-key", envvar="ADMIN_API_KEY", required=True, help="Value of X-Admin-Key"
)


@click.group("users")
def users_cmd() -> None:
    """List, inspect and delete users."""


@users_cmd.command("list")
@admin_key_option
@click.option("--filter", "filter_str", default="", help="Filter by email/username")
@click.pass_context
def users_list(ctx: click.Context, admin_key: str, filter_str: str) -> None:
    """List all users."""
    data = call(ctx, "GET", "/api/v1/admin/users", headers={"X-Admin-Key": admin_key})
    items = data["items"]
    if filter_str:
        fl = filter_str.lower()
        items = [
            u for u in items
            if fl in (u.get("email") or "").lower() or fl in (u.get("username") or "").lower()
        ]
    console.print(users_table(items))
    console.print(f"[dim]Showing {len(items)} of {data['total']} users.[/dim]")


@users_cmd.command("show")
@admin_key_option
@click.argument("email_or_id")
@click.pass_context
def users_show(ctx: click.Context, admin_key: str, email_or_id: str) -> None:
    """Show one user by email or id."""
    data = call(ctx, "GET", "/api/v1/admin/users", headers={"X-Admin-Key": admin_key})
    for user in data["items"]:
        if email_or_id in (user.get("id"), user.get("email")):
            user_detail(user)
            return
    console.print(f"[yellow]User {email_or_id!r} not found.[/yellow]")
    raise SystemExit(1)


@users_cmd.command("delete")
@admin_key_option
@click.argument("user_id")
@click.confirmation_option(prompt="Delete this user and all provider links?")
@click.pass_context
def users_delete(ctx: click.Context, admin_key: str, user_id: str) -> None:
    """Delete a user by id."""
    call(ctx, "DELETE", f"/api/v1/admin/users/{user_id}", headers={"X-Admin-Key": admin_key})
    console.print(f"[green]User {user_id} deleted.[/green]")
