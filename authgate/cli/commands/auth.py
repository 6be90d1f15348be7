"""CLI commands for signing in and inspecting a session."""

from __future__ import annotations

import click

from authgate.cli.client import bearer, call
from authgate.cli.output import console, user_detail


@click.group("auth")
def auth_cmd() -> None:
    """Sign in, inspect and end sessions."""


@auth_cmd.command("register")
@click.option("--email", prompt=True)
@click.option("--username", prompt=True)
@click.password_option()
@click.pass_context
def auth_register(ctx: click.Context, email: str, username: str, password: str) -> None:
    """Create a local account and print its session token."""
    data = call(
        ctx,
        "POST",
        "/api/v1/auth/register",
        json={"email": email, "username": username, "password": password},
    )
    console.print(f"[green]{data['message']}[/green]")
    click.echo(data["token"])


@auth_cmd.command("login")
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True)
@click.option("--code", default=None, help="TOTP or backup code, if 2FA is enabled")
@click.pass_context
def auth_login(ctx: click.Context, email: str, password: str, code: str | None) -> None:
    """Log in and print the session token."""
    payload = {"email": email, "password": password}
    if code:
        payload["twoFactorCode"] = code
    data = call(ctx, "POST", "/api/v1/auth/login", json=payload)

    if data.get("requiresTwoFactor"):
        code = click.prompt("2FA code")
        data = call(
            ctx,
            "POST",
            "/api/v1/auth/2fa/verify",
            json={"tempToken": data["tempToken"], "twoFactorCode": code},
        )

    console.print(f"[green]{data['message']}[/green]")
    click.echo(data["token"])


@auth_cmd.command("me")
@click.option("--token", envvar="AUTHGATE_TOKEN", required=True, help="Session token")
@click.pass_context
def auth_me(ctx: click.Context, token: str) -> None:
    """Show the user behind a session token."""
    data = call(ctx, "GET", "/api/v1/auth/me", headers=bearer(token))
    user_detail(data["user"])


@auth_cmd.command("logout")
@click.option("--token", envvar="AUTHGATE_TOKEN", required=True, help="Session token")
@click.pass_context
def auth_logout(ctx: click.Context, token: str) -> None:
    """End the session and revoke stored provider tokens."""
    data = call(ctx, "POST", "/api/v1/auth/logout", headers=bearer(token))
    console.print(data["message"])
    if data.get("reason"):
        console.print(f"[yellow]{data['reason']}[/yellow]")
