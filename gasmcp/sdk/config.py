"""Configuration management for gas-mcp.

Settings come from two places. Environment variables (optionally loaded
from a .env file by the entry points) always win; anything not set there
falls back to the YAML file at ~/.config/gas-mcp/config.yaml.
"""

import os
import re
import yaml
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

HEX_KEY_REGEX = re.compile(r'^[0-9a-fA-F]{64}$')
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    env_path = os.getenv("GASMCP_CONFIG_DIR")
    if env_path:
        return Path(env_path)
    return Path.home() / ".config" / "gas-mcp"


def get_config_file_path() -> Path:
    """
    Get the path to the config file, respecting the GASMCP_CONFIG_FILE env var.
    """
    env_path = os.getenv("GASMCP_CONFIG_FILE")
    if env_path:
        return Path(env_path)
    return get_config_dir() / "config.yaml"


DEFAULT_CONFIG = {
    "auth": {
        "service_account_key": None,
        "credentials_path": None,
        "token_path": None,
    },
    "encryption": {
        "key": None,
    },
    "clasp": {
        "binary": "clasp",
        "timeout": 30,
    },
}


def load_config() -> dict:
    """Load the gas-mcp configuration from the config file."""
    config_file = get_config_file_path()
    defaults = _deep_merge({}, DEFAULT_CONFIG)
    if not config_file.exists():
        logger.debug(f"Config file not found at {config_file}, using default config.")
        return defaults

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
            if config is None:
                return defaults
            return _deep_merge(defaults, config)
    except yaml.YAMLError as e:
        logger.error(f"Error loading config file {config_file}: {e}")
        return defaults


def save_config(config_data: dict):
    """Save the gas-mcp configuration to the config file."""
    config_file = get_config_file_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, 'w') as f:
        yaml.safe_dump(config_data, f, default_flow_style=False)
    logger.debug(f"Configuration saved to {config_file}")


def get_config_value(key: str, default: Any = None, config_data: Optional[dict] = None) -> Any:
    """Retrieve a configuration value using a dot-separated key."""
    if config_data is None:
        config_data = load_config()
    value = config_data
    for k in key.split('.'):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return default if value is None else value


def set_config_value(key: str, value: Any):
    """Set a configuration value using a dot-separated key and save."""
    config_data = load_config()
    keys = key.split('.')
    current_level = config_data
    for i, k in enumerate(keys):
        if i == len(keys) - 1:
            current_level[k] = value
        else:
            if k not in current_level or not isinstance(current_level[k], dict):
                current_level[k] = {}
            current_level = current_level[k]
    save_config(config_data)


def _deep_merge(base: dict, new: dict) -> dict:
    """Recursively merge dictionary `new` into `base`."""
    for k, v in new.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            base[k] = _deep_merge(base[k], v)
        elif isinstance(v, dict):
            base[k] = _deep_merge({}, v)
        else:
            base[k] = v
    return base


@dataclass
class Settings:
    """Resolved runtime settings, environment first then config file."""

    service_account_key: Optional[str] = None
    credentials_path: Optional[str] = None
    auth_code: Optional[str] = None
    token_path: Optional[str] = None
    encryption_key: Optional[str] = None
    clasp_binary: str = "clasp"
    clasp_timeout: int = 30
    log_level: str = "INFO"

    @property
    def resolved_token_path(self) -> Path:
        if self.token_path:
            return Path(self.token_path).expanduser()
        if self.credentials_path:
            return Path(self.credentials_path).expanduser().parent / "token.json"
        return get_config_dir() / "token.json"


def load_settings(environ: Optional[dict] = None) -> Settings:
    """
    Build Settings from the environment and the YAML config file.

    Args:
        environ: Mapping to read variables from (default: os.environ)

    Returns:
        Settings instance
    """
    env = os.environ if environ is None else environ
    config_data = load_config()

    def pick(env_name: str, config_key: str, default: Any = None) -> Any:
        value = env.get(env_name)
        if value not in (None, ""):
            return value
        return get_config_value(config_key, default, config_data=config_data)

    timeout = pick("CLASP_TIMEOUT", "clasp.timeout", 30)
    try:
        timeout = int(timeout)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric CLASP_TIMEOUT '{timeout}', using 30 seconds.")
        timeout = 30

    return Settings(
        service_account_key=pick("GOOGLE_SERVICE_ACCOUNT_KEY", "auth.service_account_key"),
        credentials_path=pick("GOOGLE_CREDENTIALS_PATH", "auth.credentials_path"),
        auth_code=env.get("GOOGLE_AUTH_CODE") or None,
        token_path=pick("GOOGLE_TOKEN_PATH", "auth.token_path"),
        encryption_key=pick("ENCRYPTION_KEY", "encryption.key"),
        clasp_binary=pick("CLASP_BINARY", "clasp.binary", "clasp"),
        clasp_timeout=timeout,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )


def validate_environment(settings: Settings) -> tuple[list[str], list[str]]:
    """
    Check settings for startup problems.

    Returns:
        Tuple of (errors, warnings). Any error is fatal for the server.
    """
    errors = []
    warnings = []

    if settings.log_level not in VALID_LOG_LEVELS:
        errors.append(
            f"LOG_LEVEL '{settings.log_level}' is invalid; "
            f"expected one of {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    if settings.encryption_key and not HEX_KEY_REGEX.match(settings.encryption_key):
        errors.append("ENCRYPTION_KEY must be 64 hexadecimal characters (32 bytes)")
    elif not settings.encryption_key:
        warnings.append(
            "ENCRYPTION_KEY not set; a temporary key will be generated and "
            "encrypted properties will not survive a restart"
        )

    sa_key = settings.service_account_key
    if sa_key and not sa_key.strip().startswith("{"):
        if not Path(sa_key).expanduser().is_file():
            errors.append(f"GOOGLE_SERVICE_ACCOUNT_KEY file not found: {sa_key}")

    if settings.credentials_path and not Path(settings.credentials_path).expanduser().is_file():
        errors.append(f"GOOGLE_CREDENTIALS_PATH file not found: {settings.credentials_path}")

    if not sa_key and not settings.credentials_path:
        warnings.append(
            "No GOOGLE_SERVICE_ACCOUNT_KEY or GOOGLE_CREDENTIALS_PATH configured; "
            "application default credentials will be used"
        )

    return errors, warnings


def configure_logging(level: str = "INFO"):
    """Configure root logging once, on stderr, and quiet the Google clients."""
    if not logging.root.handlers:
        level = level.upper() if level and level.upper() in VALID_LOG_LEVELS else "INFO"
        logging.basicConfig(level=getattr(logging, level),
                            format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
    # Suppress noisy INFO logs from googleapiclient and google_auth_oauthlib
    logging.getLogger('googleapiclient.discovery').setLevel(logging.WARNING)
    logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.WARNING)
    logging.getLogger('google_auth_oauthlib.flow').setLevel(logging.WARNING)
