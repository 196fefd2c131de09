"""Click CLI for running and operating the SurveyCake bridge."""

from __future__ import annotations

from pathlib import Path

import click
import uvicorn

from src.audit.logger import validate_audit_chain
from src.webhook.signature import compute_signature


@click.group()
def cli() -> None:
    """SurveyCake → FirstLine tag bridge."""


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
def serve(host: str, port: int) -> None:
    """Serve the webhook, configured from environment variables."""
    uvicorn.run("src.api.app:create_app_from_env", factory=True, host=host, port=port)


@cli.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--secret", envvar="SURVEYCAKE_SECRET", required=True, help="Shared signing secret.")
def sign(payload_file: Path, secret: str) -> None:
    """Print the X-SurveyCake-Signature value for a payload file."""
    click.echo(compute_signature(secret, payload_file.read_bytes()))


@cli.command("verify-audit")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def verify_audit(log_path: Path) -> None:
    """Validate the hash chain of an audit log."""
    result = validate_audit_chain(log_path)
    if result.valid:
        click.echo(f"OK: {result.entries} entries")
        return
    click.echo(f"Chain broken at line {result.broken_at_line}", err=True)
    raise SystemExit(1)


if __name__ == "__main__":
    cli()
