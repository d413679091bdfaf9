"""Outlook Vault CLI interface."""

import asyncio
import secrets
import sys

import click
import uvicorn

from outlook_vault import __version__
from outlook_vault.lib.config import load_config
from outlook_vault.lib.errors import StoreUnavailable
from outlook_vault.lib.logger import get_logger
from outlook_vault.lib.utils import hash_email
from outlook_vault.storage.record_store import RecordStore, connect_redis

logger = get_logger(__name__)


def _load_settings(env_file):
    """Load settings or exit with the validation message."""
    try:
        return load_config(env_file)
    except ValueError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)


async def _forget(settings, email):
    redis = connect_redis(settings.redis)
    try:
        return await RecordStore(redis).delete(email)
    finally:
        await redis.aclose()


async def _ping(settings):
    redis = connect_redis(settings.redis)
    try:
        return await RecordStore(redis).ping()
    finally:
        await redis.aclose()


@click.group()
@click.version_option(version=__version__, prog_name="outlook-vault")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a .env file (default: search from the working directory)",
)
@click.pass_context
def cli(ctx, env_file):
    """Outlook Vault - credential vault and session gateway for EWS mailboxes."""
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file


@cli.command()
@click.option("--host", default=None, help="Bind address (default: OUTLOOK_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: OUTLOOK_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
@click.pass_context
def serve(ctx, host, port, reload):
    """Run the HTTP service."""
    settings = _load_settings(ctx.obj["env_file"])
    host = host or settings.app.host
    port = port or settings.app.port

    click.echo(f"Starting Outlook Vault on {host}:{port}")
    logger.info(f"EWS endpoint: {settings.exchange.ews_url}")

    if reload:
        uvicorn.run(
            "outlook_vault.api.app:create_app_from_env",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level=settings.app.log_level.lower(),
        )
        return

    from outlook_vault.api.app import create_app

    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_level=settings.app.log_level.lower(),
    )


@cli.command("generate-keys")
def generate_keys():
    """Print a fresh AES key and session secret.

    Changing the AES key invalidates every stored credential; users have to
    log in again.
    """
    click.echo(f"OUTLOOK_AES_SECRET_KEY={secrets.token_hex(32)}")
    click.echo(f"OUTLOOK_SESSION_SECRET={secrets.token_urlsafe(48)}")


@cli.command()
@click.argument("email")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def forget(ctx, email, yes):
    """Delete the stored record for EMAIL.

    The user's session stops working immediately; they have to log in again.

    Examples:
        outlook-vault forget user@example.com
    """
    settings = _load_settings(ctx.obj["env_file"])

    if not yes and not click.confirm(f"Delete the stored record for {email}?"):
        click.echo("Cancelled.")
        return

    try:
        removed = asyncio.run(_forget(settings, email))
    except StoreUnavailable as e:
        click.echo(f"✗ Record store error: {e}", err=True)
        sys.exit(1)

    if removed:
        logger.info(f"Record revoked by operator for user {hash_email(email)}")
        click.echo(f"✓ Record deleted for: {email}")
    else:
        click.echo(f"✗ No record found for: {email}")
        sys.exit(1)


@cli.command()
@click.pass_context
def check(ctx):
    """Validate configuration and check that Redis answers."""
    click.echo("Outlook Vault Status")
    click.echo("====================")

    settings = _load_settings(ctx.obj["env_file"])
    click.echo("✓ Configuration: valid")

    click.echo()
    click.echo("Configuration:")
    click.echo(f"  EWS endpoint: {settings.exchange.ews_url}")
    click.echo(f"  OWA base URL: {settings.exchange.owa_url}")
    click.echo(f"  Remote timeout: {settings.exchange.remote_timeout:.0f}s")
    click.echo(f"  Redis: {settings.redis.host}:{settings.redis.port}/{settings.redis.db}")
    click.echo(f"  Session lifetime: {settings.security.session_max_age_days} days")
    click.echo()

    try:
        asyncio.run(_ping(settings))
    except StoreUnavailable as e:
        click.echo(f"✗ Redis: {e}", err=True)
        sys.exit(1)

    click.echo("✓ Redis: reachable")


if __name__ == "__main__":
    cli()
