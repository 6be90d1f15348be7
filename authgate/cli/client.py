"""Thin HTTP helper shared by the CLI commands."""

from __future__ import annotations

from typing import Any

import click
import httpx

from authgate.cli.output import console


def call(ctx: click.Context, method: str, path: str, **kwargs: Any) -> Any:
    """Send one request to the API. Prints the error and exits 1 on failure."""
    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.request(method, f"{api_url}{path}", timeout=15, **kwargs)
        r.raise_for_status()
    except httpx.ConnectError:
        console.print(f"[red]Cannot connect to API at {api_url}.[/red]")
        raise SystemExit(1)
    except httpx.HTTPStatusError as e:
        try:
            body = e.response.json()
            detail = f"{body.get('error')}: {body.get('detail')}"
        except ValueError:
            detail = e.response.text
        console.print(f"[red]Error {e.response.status_code}:[/red] {detail}")
        raise SystemExit(1)
    except httpx.HTTPError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if r.status_code == 204 or not r.content:
        return None
    return r.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
