"""`gasmcp config` commands for the YAML settings file."""

import click
import yaml

from gasmcp.sdk import config

# Keys that may be set from the command line and how to validate them
ALLOWED_CONFIG = {
    "auth.service_account_key": {"type": str},
    "auth.credentials_path": {"type": str},
    "auth.token_path": {"type": str},
    "encryption.key": {"type": str, "pattern": config.HEX_KEY_REGEX},
    "clasp.binary": {"type": str},
    "clasp.timeout": {"type": int},
}


@click.group()
def config_group():
    """Commands for managing gas-mcp configuration."""
    pass


@config_group.command('view')
def view_config():
    """Displays the current configuration (secrets masked)."""
    from gasmcp.sdk.crypto import mask_secret

    config_data = config.load_config()
    key = config_data.get("encryption", {}).get("key")
    if key:
        config_data["encryption"]["key"] = mask_secret(key)
    click.echo(yaml.dump(config_data, default_flow_style=False))


@config_group.command('set')
@click.argument('key')
@click.argument('value')
def set_config(key, value):
    """
    Sets a configuration value for a supported key.

    \b
    Supported Keys:
      auth.service_account_key, auth.credentials_path, auth.token_path,
      encryption.key, clasp.binary, clasp.timeout

    \b
    Examples:
      gasmcp config set auth.credentials_path ~/client_secret.json
      gasmcp config set clasp.timeout 60
    """
    if key not in ALLOWED_CONFIG:
        raise click.UsageError(f"Configuration key '{key}' is not supported.")

    schema = ALLOWED_CONFIG[key]
    if schema["type"] is int:
        if not value.isdigit():
            raise click.UsageError(f"Value for '{key}' must be a whole number.")
        value = int(value)
    elif "pattern" in schema and not schema["pattern"].match(value):
        raise click.UsageError(f"Invalid value for '{key}'.")

    config.set_config_value(key, value)
    click.echo(f"Set {key}")
