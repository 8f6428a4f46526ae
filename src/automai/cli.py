"""CLI entrypoint: Typer-based command interface.

Commands:
    automai check-url         Validate and canonicalize a gateway base URL
    automai connection-state  Query an Evolution instance's connection state
    automai serve             Start the FastAPI server
"""

from __future__ import annotations

import asyncio

import typer

from automai.utils.url_safety import UnsafeUrlError, ensure_resolves_public, validate_base_url

app = typer.Typer(
    name="automai",
    help="AutomAI gateway tools: SSRF-safe onboarding of tenant WhatsApp gateways",
)


@app.command()
def check_url(
    url: str = typer.Argument(help="Candidate gateway base URL"),
    allow_http: bool = typer.Option(False, help="Accept plain http://"),
    resolve: bool = typer.Option(False, help="Also resolve the host and check every address"),
) -> None:
    """Print the canonical form of URL, or why it is rejected."""
    try:
        canonical = validate_base_url(url, allow_http=allow_http)
        if resolve:
            ensure_resolves_public(canonical)
    except UnsafeUrlError as exc:
        typer.echo(f"Rejected:  {exc.error_key} ({exc.reason})", err=True)
        typer.echo(f"Message:   {exc.message}", err=True)
        raise typer.Exit(code=1)

    typer.echo(canonical)


@app.command()
def connection_state(
    url: str = typer.Argument(help="Evolution API base URL"),
    api_key: str = typer.Option(..., envvar="EVOLUTION_API_KEY", help="Evolution API key"),
    instance: str = typer.Option(..., help="Evolution instance name"),
    allow_http: bool = typer.Option(False, help="Accept plain http://"),
    timeout: float = typer.Option(10.0, help="HTTP timeout in seconds"),
) -> None:
    """Query the connection state of an Evolution instance."""
    from automai.integrations.evolution import EvolutionApiError, EvolutionClient

    async def _run() -> str | None:
        async with EvolutionClient(
            url, api_key, timeout=timeout, allow_http=allow_http
        ) as client:
            return await client.connection_state(instance)

    try:
        state = asyncio.run(_run())
    except UnsafeUrlError as exc:
        typer.echo(f"Rejected:  {exc.error_key} ({exc.reason})", err=True)
        raise typer.Exit(code=1)
    except EvolutionApiError as exc:
        typer.echo(f"Error:     {exc.error_key}: {exc.message}", err=True)
        raise typer.Exit(code=2)

    typer.echo(f"Instance:  {instance}")
    typer.echo(f"State:     {state or 'unknown'}")


@app.command()
def serve(
    host: str | None = typer.Option(None, help="API server host [default: API_HOST]"),
    port: int | None = typer.Option(None, help="API server port [default: API_PORT]"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the AutomAI gateway API server."""
    import uvicorn

    from automai.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "automai.api.app:create_app",
        host=host or settings.api_host,
        port=port if port is not None else settings.api_port,
        reload=reload,
        factory=True,
    )


if __name__ == "__main__":
    app()
