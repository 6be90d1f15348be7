"""Rich output helpers — user and provider tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

console = Console()


def fmt_date(iso: str | None) -> str:
    if not iso:
        return "—"
    try:
        dt = datetime.fromisoformat(iso.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return iso


def _flag(value: bool | None, style: str = "green") -> Text:
    return Text("✓", style=style) if value else Text("✗", style="dim")


def users_table(items: list[dict[str, Any]]) -> Table:
    table = Table(
        title=f"Users ({len(items)})",
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
        show_lines=False,
    )
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Username", style="bold")
    table.add_column("Email")
    table.add_column("Providers")
    table.add_column("2FA", justify="center")
    table.add_column("Active", justify="center")
    table.add_column("Last login", style="dim")

    for u in items:
        providers = ", ".join(p.get("provider", "") for p in u.get("providers", []))
        table.add_row(
            str(u.get("id", ""))[:8] + "…",
            u.get("username") or "—",
            u.get("email") or "—",
            providers or "—",
            _flag((u.get("twoFactor") or {}).get("enabled"), style="yellow"),
            _flag(u.get("isActive")),
            fmt_date(u.get("lastLoginAt")),
        )
    return table


def user_detail(u: dict[str, Any]) -> None:
    """Print a detailed view of one user."""
    console.rule(f"[bold cyan]User — {u.get('username') or u.get('id')}")

    two_factor = u.get("twoFactor") or {}
    fields = [
        ("ID", u.get("id")),
        ("Email", u.get("email")),
        ("Username", u.get("username")),
        ("Active", str(u.get("isActive"))),
        ("2FA", "enabled" if two_factor.get("enabled") else "disabled"),
        ("Backup codes", str(two_factor.get("backupCodesRemaining", 0))),
        ("Created", fmt_date(u.get("createdAt"))),
        ("Last login", fmt_date(u.get("lastLoginAt"))),
    ]
    for label, value in fields:
        if value:
            console.print(f"  [dim]{label:<14}[/dim] {value}")

    links = u.get("providers", [])
    if links:
        console.print()
        link_table = Table(title="Linked providers", header_style="bold cyan", border_style="dim")
        link_table.add_column("Provider", style="bold")
        link_table.add_column("Account")
        link_table.add_column("Email")
        link_table.add_column("Linked", style="dim")
        for link in links:
            link_table.add_row(
                link.get("provider", ""),
                link.get("username") or link.get("providerId", ""),
                link.get("email") or "—",
                fmt_date(link.get("linkedAt")),
            )
        console.print(link_table)


def providers_table(items: list[dict[str, Any]]) -> Table:
    table = Table(
        title=f"Configured providers ({len(items)})",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Name", style="bold")
    table.add_column("Display name")
    table.add_column("Scope")
    table.add_column("Revocation", justify="center")

    for p in items:
        table.add_row(
            p.get("name", ""),
            p.get("displayName", ""),
            p.get("scope", ""),
            _flag(p.get("supportsRevocation")),
        )
    return table
