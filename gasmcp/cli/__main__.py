"""gas-mcp CLI - Command-line companion to the gas-mcp MCP server."""

import logging
import os
import sys
import json
from dotenv import load_dotenv
import click
from click_option_group import optgroup, MutuallyExclusiveOptionGroup

from gasmcp import __version__
from gasmcp.sdk.config import configure_logging, load_settings, validate_environment, set_config_value
from gasmcp.sdk.auth import Authenticator, detect_auth_method
from gasmcp.sdk.clasp import ClaspRunner
from gasmcp.sdk.crypto import generate_secure_token

from .config_commands import config_group as config_module


# Configure logging at the application level
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(__version__, prog_name="gasmcp")
def gasmcp():
    """gas-mcp CLI.

    Manage credentials and local setup for the Google Apps Script MCP server.
    """
    pass


@click.command()
@optgroup.group('Authentication override', cls=MutuallyExclusiveOptionGroup)
@optgroup.option('--service-account-key', type=click.Path(exists=True, dir_okay=False),
                 help='Check a service account key file instead of the configured strategy.')
@optgroup.option('--credentials-path', type=click.Path(exists=True, dir_okay=False),
                 help='Check an OAuth client secrets file instead of the configured strategy.')
@optgroup.option('--adc', is_flag=True, help='Check Application Default Credentials.')
@click.option('--check', is_flag=True, help='Authenticate and make a live API call.')
def status(service_account_key, credentials_path, adc, check):
    """Show configuration, authentication strategy and key status.

    Use --check for deep validation that makes live API calls.
    """
    settings = load_settings()
    if service_account_key:
        settings.service_account_key, settings.credentials_path = service_account_key, None
    elif credentials_path:
        settings.service_account_key, settings.credentials_path = None, credentials_path
    elif adc:
        settings.service_account_key = settings.credentials_path = None

    click.echo("\n" + "=" * 50)
    click.echo("gas-mcp Status")
    click.echo("=" * 50)

    click.echo(f"\nAuth strategy: {detect_auth_method(settings)}")
    click.echo(f"Encryption key: {'configured' if settings.encryption_key else 'NOT SET (temporary key per run)'}")
    click.echo(f"clasp: {settings.clasp_binary} (timeout {settings.clasp_timeout}s)")

    errors, warnings = validate_environment(settings)
    for warning in warnings:
        click.secho(f"  ! {warning}", fg="yellow")
    for error in errors:
        click.secho(f"  ✗ {error}", fg="red")

    if check:
        click.echo("\nRunning deep validation...")
        from gasmcp.sdk import script

        auth = Authenticator(settings)
        try:
            auth.authenticate()
            click.secho("  ✓ authenticated", fg="green")
            projects = script.list_projects(auth, page_size=1)
            click.secho(f"  ✓ Drive API (found {len(projects['projects'])} project(s) on first page)", fg="green")
        except Exception as e:
            click.secho(f"  ✗ {e}", fg="red")
            sys.exit(1)

    click.echo("\n" + "=" * 50)
    if errors:
        sys.exit(1)


@click.command()
@click.option('--save', is_flag=True, help='Store the key in the config file as encryption.key.')
def keygen(save):
    """Generate a new 256-bit ENCRYPTION_KEY.

    Changing the key makes properties encrypted with the old key unreadable.
    Back them up with include_encrypted=false before switching.
    """
    key = generate_secure_token(32)
    if save:
        set_config_value("encryption.key", key)
        click.echo("Saved new key to config (encryption.key).")
    else:
        click.echo(f"ENCRYPTION_KEY={key}")


@click.command()
def serve():
    """Run the MCP server on stdio."""
    from gasmcp.mcp.server import run_server
    run_server()


@click.command('clasp-login')
@click.option('--no-localhost', is_flag=True, help='Paste the authorization code instead of using a local redirect.')
@click.option('--creds', type=click.Path(exists=True, dir_okay=False), default=None,
              help='OAuth client file for clasp login.')
def clasp_login(no_localhost, creds):
    """Log in to clasp interactively (opens a browser)."""
    settings = load_settings()
    runner = ClaspRunner(binary=settings.clasp_binary, timeout=settings.clasp_timeout)
    try:
        runner.login(no_localhost=no_localhost, creds=creds)
        click.secho("✓ clasp login complete", fg="green")
    except Exception as e:
        logger.critical(f"clasp login failed: {e}")
        sys.exit(1)


@click.command()
@click.argument('script_id')
@click.option('--max-age', type=int, default=0, show_default=True,
              help='Only remove temp files at least this many seconds old.')
def sweep(script_id, max_age):
    """Remove leftover gas-mcp temp scripts from a project."""
    from gasmcp.sdk.script import sweep_temp_files

    auth = Authenticator(load_settings())
    try:
        auth.authenticate()
        result = sweep_temp_files(auth, script_id, max_age)
        click.echo(json.dumps(result, indent=2))
    except Exception as e:
        logger.critical(f"An error occurred during sweep of {script_id}: {e}", exc_info=True)
        sys.exit(1)


# Add commands to groups using add_command()
gasmcp.add_command(status, name='status')
gasmcp.add_command(keygen, name='keygen')
gasmcp.add_command(serve, name='serve')
gasmcp.add_command(clasp_login, name='clasp-login')
gasmcp.add_command(sweep, name='sweep')
gasmcp.add_command(config_module, name='config')


def main():
    """Entry point for the CLI."""
    load_dotenv()
    gasmcp()


if __name__ == "__main__":
    main()
