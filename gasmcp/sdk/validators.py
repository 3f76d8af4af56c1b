import re
from .exceptions import LocalPathError, InvalidScriptIdError

# Path indicators that should never appear in a Google resource ID
LOCAL_PATH_REGEX = re.compile(r'[\\/~.]')

# Apps Script IDs are long URL-safe base64 strings
VALID_ID_REGEX = re.compile(r'^[a-zA-Z0-9-_]{10,128}$')

def validate_script_id(script_id: str):
    """
    Validates an Apps Script project ID.

    Raises:
        LocalPathError: If the ID looks like a local file path.
        InvalidScriptIdError: If the ID format is invalid.
    """
    if not script_id:
        raise InvalidScriptIdError("Script ID cannot be empty.")

    if LOCAL_PATH_REGEX.search(script_id):
        raise LocalPathError(
            f"Input '{script_id}' looks like a local path. "
            "Use clasp_clone or clasp_pull to work with local project directories."
        )

    if not VALID_ID_REGEX.match(script_id):
        raise InvalidScriptIdError(
            f"Invalid Script ID format: '{script_id}'. "
            "Expected 10-128 alphanumeric characters, dashes, or underscores."
        )
