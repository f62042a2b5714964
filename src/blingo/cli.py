"""Typer CLI for Blingo."""

import asyncio

import typer
from rich.console import Console

app = typer.Typer(name="blingo", help="Blingo: API-key gated GitHub repository summarizer")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Blingo API server."""
    import uvicorn
    from blingo.app import create_app

    console.print(f"[bold green]Starting Blingo on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def generate():
    """Generate an API key (offline, not stored)."""
    from blingo.common.config import get_settings
    from blingo.keys.generator import generate_api_key

    console.print(f"[bold]{generate_api_key(get_settings().key_prefix)}[/bold]")


@app.command()
def token(
    email: str = typer.Argument(..., help="Caller email to embed in the session"),
    name: str = typer.Option(None, help="Display name"),
):
    """Mint a signed session token for the key management API (local testing)."""
    from blingo.common.security import create_session_token

    # Plain echo: rich would wrap the token at the terminal width.
    typer.echo(create_session_token(email, name=name))


@app.command("reset-usage")
def reset_usage(
    key_id: str = typer.Argument(..., help="API key id whose usage is reset to 0"),
):
    """Reset an API key's usage counter."""
    from blingo.common.config import get_settings
    from blingo.common.database import DatabaseManager
    from blingo.keys.store import build_key_store

    settings = get_settings()
    if not settings.store_configured:
        console.print("[bold red]Error:[/bold red] BLINGO_DB_URL is not set")
        raise typer.Exit(1)

    async def _reset() -> bool:
        db = DatabaseManager(settings)
        await db.init()
        try:
            return await build_key_store(settings, db).reset_usage(key_id)
        finally:
            await db.close()

    if asyncio.run(_reset()):
        console.print(f"[bold green]Usage reset[/bold green] for {key_id}")
    else:
        console.print(f"[bold red]No usage reset[/bold red] for {key_id}")
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Blingo server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
