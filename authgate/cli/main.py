"""AuthGate CLI entry point — `authgate` command group."""

from __future__ import annotations

import click

from authgate.cli.commands.auth import auth_cmd
from authgate.cli.commands.providers import providers_cmd
from authgate.cli.commands.users import users_cmd


@click.group()
@click.version_option(package_name="authgate")
@click.option(
    "--api-url",
    default="http://localhost:3000",
    envvar="AUTHGATE_API_URL",
    show_default=True,
    help="Base URL of the AuthGate API server",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """AuthGate — identity and session authority.

    \b
    Quick start:
      authgate serve
      authgate auth register
      authgate auth login --email a@x.com
      authgate providers list
      authgate users list --admin-key ...

    API docs: http://localhost:3000/docs
    """
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url.rstrip("/")


cli.add_command(auth_cmd)
cli.add_command(providers_cmd)
cli.add_command(users_cmd)


@cli.command("serve")
@click.option("--host", default=None, help="Bind host [default: APP_HOST]")
@click.option("--port", default=None, type=int, help="Bind port [default: APP_PORT]")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload (dev mode)")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the AuthGate API server."""
    import uvicorn

    from authgate.core.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "authgate.api.app:app",
        host=host or settings.app_host,
        port=port or settings.app_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
