"""Authentication for the Apps Script and Drive APIs.

Three strategies, picked by configuration in this order:

1. Service account key (GOOGLE_SERVICE_ACCOUNT_KEY), inline JSON or a path.
2. OAuth client secrets (GOOGLE_CREDENTIALS_PATH) with a cached user token.
   The first run needs GOOGLE_AUTH_CODE obtained from the logged consent URL.
3. Application Default Credentials.

An Authenticator instance holds all credential state; nothing is module
global, so tests and the server each build their own.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import google_auth_httplib2
import httplib2
from googleapiclient.discovery import build
from googleapiclient.http import HttpRequest

from .config import Settings, load_settings
from .exceptions import AuthError, NotAuthenticatedError

logger = logging.getLogger(__name__)

SCRIPT_SCOPES = [
    "https://www.googleapis.com/auth/script.projects",
    "https://www.googleapis.com/auth/script.processes",
    "https://www.googleapis.com/auth/script.deployments",
    "https://www.googleapis.com/auth/script.metrics",
    "https://www.googleapis.com/auth/script.scriptapp",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
]

STRATEGY_SERVICE_ACCOUNT = "service_account"
STRATEGY_OAUTH = "oauth"
STRATEGY_DEFAULT = "default"


def detect_auth_method(settings: Settings) -> str:
    """Return which strategy the given settings select."""
    if settings.service_account_key:
        return STRATEGY_SERVICE_ACCOUNT
    if settings.credentials_path:
        return STRATEGY_OAUTH
    return STRATEGY_DEFAULT


class Authenticator:
    """Holds one credential and hands out authorized API clients."""

    def __init__(self, settings: Optional[Settings] = None, scopes: Optional[list] = None):
        self.settings = settings or load_settings()
        self.scopes = list(scopes or SCRIPT_SCOPES)
        self.credentials = None
        self.strategy: Optional[str] = None
        self._services: dict = {}

    def is_authenticated(self) -> bool:
        return self.credentials is not None

    def authenticate(self):
        """
        Resolve credentials using the configured strategy.

        Raises:
            AuthError: With the underlying failure chained as the cause.
        """
        strategy = detect_auth_method(self.settings)
        logger.info(f"Authenticating with strategy: {strategy}")
        self.reset()
        try:
            if strategy == STRATEGY_SERVICE_ACCOUNT:
                creds = self._from_service_account(self.settings.service_account_key)
            elif strategy == STRATEGY_OAUTH:
                creds = self._from_oauth(self.settings.credentials_path)
            else:
                creds = self._from_default()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Authentication failed ({strategy}): {e}") from e

        self.credentials = creds
        self.strategy = strategy
        logger.info("Authentication complete")
        return creds

    def _from_service_account(self, key: str):
        from google.oauth2 import service_account

        key = key.strip()
        if key.startswith("{"):
            try:
                info = json.loads(key)
            except json.JSONDecodeError as e:
                raise AuthError(f"GOOGLE_SERVICE_ACCOUNT_KEY is not valid JSON: {e}") from e
        else:
            path = Path(key).expanduser()
            if not path.is_file():
                raise AuthError(f"Service account key file not found: {path}")
            with open(path, "r") as f:
                info = json.load(f)
        return service_account.Credentials.from_service_account_info(info, scopes=self.scopes)

    def _from_oauth(self, credentials_path: str):
        from google.oauth2.credentials import Credentials
        from google.auth.transport.requests import Request

        secrets_path = Path(credentials_path).expanduser()
        if not secrets_path.is_file():
            raise AuthError(f"OAuth credentials file not found: {secrets_path}")

        token_path = self.settings.resolved_token_path
        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), self.scopes)
            if not creds.valid and creds.expired and creds.refresh_token:
                creds.refresh(Request())
                self._save_token(creds, token_path)
            logger.debug(f"Using cached OAuth token from {token_path}")
            return creds

        return self._run_oauth_flow(secrets_path, token_path)

    def _run_oauth_flow(self, secrets_path: Path, token_path: Path):
        from google_auth_oauthlib.flow import Flow

        with open(secrets_path, "r") as f:
            client_config = json.load(f)
        client = client_config.get("installed") or client_config.get("web") or {}
        redirect_uris = client.get("redirect_uris") or ["urn:ietf:wg:oauth:2.0:oob"]

        flow = Flow.from_client_config(client_config, scopes=self.scopes, redirect_uri=redirect_uris[0])
        auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")

        code = self.settings.auth_code
        if not code:
            logger.warning(f"Authorize this application by visiting: {auth_url}")
            raise AuthError(
                "No cached OAuth token and GOOGLE_AUTH_CODE is not set. "
                "Visit the logged authorization URL and set GOOGLE_AUTH_CODE."
            )

        flow.fetch_token(code=code)
        creds = flow.credentials
        self._save_token(creds, token_path)
        logger.info(f"OAuth token saved to {token_path}")
        return creds

    def _save_token(self, creds, token_path: Path):
        token_path.parent.mkdir(parents=True, exist_ok=True)
        with open(token_path, "w") as f:
            f.write(creds.to_json())
        os.chmod(token_path, 0o600)

    def _from_default(self):
        import google.auth

        creds, project = google.auth.default(scopes=self.scopes)
        if project:
            logger.debug(f"Application Default Credentials (project: {project})")
        return creds

    def _service(self, api: str, version: str) -> Any:
        if not self.is_authenticated():
            raise NotAuthenticatedError("Not authenticated. Call authenticate() first.")
        key = (api, version)
        if key not in self._services:
            self._services[key] = build(
                api,
                version,
                credentials=self.credentials,
                requestBuilder=self._build_request,
                cache_discovery=False,
            )
        return self._services[key]

    def _build_request(self, http, *args, **kwargs):
        # httplib2.Http is not thread-safe: one transport per request, shared credentials
        fresh_http = google_auth_httplib2.AuthorizedHttp(self.credentials, http=httplib2.Http())
        return HttpRequest(fresh_http, *args, **kwargs)

    def get_script_service(self):
        """Apps Script API v1 client."""
        return self._service("script", "v1")

    def get_drive_service(self):
        """Drive API v3 client."""
        return self._service("drive", "v3")

    def refresh_token(self):
        """
        Refresh the held credentials once.

        Raises:
            NotAuthenticatedError: If nothing has been authenticated yet.
            Exception: Whatever the transport raised; there is no retry.
        """
        from google.auth.transport.requests import Request

        if not self.is_authenticated():
            raise NotAuthenticatedError("Not authenticated. Call authenticate() first.")
        self.credentials.refresh(Request())
        self._services.clear()
        if self.strategy == STRATEGY_OAUTH:
            self._save_token(self.credentials, self.settings.resolved_token_path)
        logger.debug("Access token refreshed")

    def validate_token(self) -> bool:
        """True if the held credentials are valid now or after one refresh."""
        if not self.is_authenticated():
            return False
        if getattr(self.credentials, "valid", False):
            return True
        try:
            self.refresh_token()
        except Exception as e:
            logger.warning(f"Token validation failed: {e}")
            return False
        return bool(getattr(self.credentials, "valid", False))

    def reset(self):
        self.credentials = None
        self.strategy = None
        self._services.clear()

    def get_auth_info(self) -> dict:
        return {
            "authenticated": self.is_authenticated(),
            "strategy": self.strategy or detect_auth_method(self.settings),
            "scopes": list(self.scopes),
            "has_access_token": bool(getattr(self.credentials, "token", None)),
        }
