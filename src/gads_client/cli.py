"""Command line interface for ad-hoc Google Ads calls."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from google.api_core.exceptions import GoogleAPICallError

from .client import Client
from .config import ClientSettings, ConfigLoader, load_from_env
from .errors import GoogleAdsClientError, GoogleAdsFailureError
from .formatting import format_rows

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

app = typer.Typer(help="Google Ads API client", no_args_is_help=True)


def _load_settings(config_path: Optional[Path]) -> ClientSettings:
    if config_path is not None:
        return ConfigLoader(config_path).model
    return load_from_env()


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    if isinstance(exc, GoogleAdsFailureError):
        for error in exc.errors:
            typer.echo(f"  - {error.message}", err=True)
        if exc.request_id:
            typer.echo(f"  request_id={exc.request_id}", err=True)
    raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show the installed client and default API version."""
    from . import __version__
    from .version import DEFAULT_API_VERSION

    typer.echo(f"gads-client {__version__} (Google Ads API {DEFAULT_API_VERSION})")


@app.command("list-customers")
def list_customers(
    config_path: Optional[Path] = typer.Option(None, "--config", help="google-ads.yaml path"),
) -> None:
    """List customer resource names accessible with the configured credentials."""
    try:
        settings = _load_settings(config_path)
        client = Client(settings.client_options())
        response = asyncio.run(client.list_accessible_customers(settings.refresh_token))
    except (GoogleAdsClientError, GoogleAPICallError) as exc:
        _fail(exc)
        return
    for resource_name in response.resource_names:
        typer.echo(resource_name)


@app.command()
def query(
    gaql: str = typer.Argument(..., help="GAQL query to run"),
    customer_id: Optional[str] = typer.Option(None, "--customer-id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="google-ads.yaml path"),
    output_format: str = typer.Option("table", "--format", help="table or json"),
) -> None:
    """Run a GAQL query against one customer."""

    async def _run(client: Client, settings: ClientSettings):
        async with client.customer(settings.customer_options(customer_id)) as customer:
            return await customer.search(gaql)

    try:
        settings = _load_settings(config_path)
        client = Client(settings.client_options())
        rows = asyncio.run(_run(client, settings))
    except (GoogleAdsClientError, GoogleAPICallError) as exc:
        _fail(exc)
        return
    logger.info("Fetched %s rows", len(rows))
    typer.echo(format_rows(rows, output_format=output_format))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
