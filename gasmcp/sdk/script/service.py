"""Apps Script and Drive service factories plus remote error wrapping."""

import json
import logging
from functools import wraps

from googleapiclient.errors import HttpError

from ..exceptions import GASError, RemoteApiError

logger = logging.getLogger(__name__)

SCRIPT_MIME_TYPE = "application/vnd.google-apps.script"


def get_script_service(auth):
    """
    Return the Apps Script API v1 service object.

    Args:
        auth: An authenticated Authenticator

    Raises:
        NotAuthenticatedError: If auth has not been authenticated
    """
    return auth.get_script_service()


def get_drive_service(auth):
    """Return the Drive API v3 service object for the same credentials."""
    return auth.get_drive_service()


def http_error_message(error: HttpError) -> str:
    """Pull the human readable message out of an HttpError payload."""
    try:
        payload = json.loads(error.content.decode("utf-8"))
        message = payload.get("error", {}).get("message")
        if message:
            return message
    except (ValueError, AttributeError):
        pass
    return getattr(error, "reason", None) or str(error)


def wraps_remote_errors(action: str):
    """
    Decorator that turns any remote failure into RemoteApiError.

    Our own GASError subclasses pass through untouched so callers can
    still tell validation and not-found conditions apart.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except GASError:
                raise
            except HttpError as e:
                message = http_error_message(e)
                logger.error(f"{action} failed: {message}")
                raise RemoteApiError(f"{action} failed: {message}") from e
            except Exception as e:
                logger.error(f"{action} failed: {e}")
                raise RemoteApiError(f"{action} failed: {e}") from e
        return wrapper
    return decorator
