"""
CLI: ``dbagent serve`` - start the API server.
"""

from __future__ import annotations

import os

import typer
import uvicorn

from dbagent.cli.utils import console, load_settings


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default: DBAGENT_API_HOST)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default: DBAGENT_API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    run_scheduler: bool = typer.Option(False, "--with-scheduler", help="Also run the scheduler loop in the API process"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the dbagent REST API server."""
    settings = load_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    if run_scheduler:
        # create_app runs in the server process and reads settings from the environment
        os.environ["DBAGENT_API_RUN_SCHEDULER"] = "true"

    console.print(f"[bold green]Starting dbagent API[/bold green] on {host}:{port}")
    uvicorn.run(
        "dbagent.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
