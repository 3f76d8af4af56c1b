"""Run functions in an Apps Script project through scripts.run."""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..timing import time_api_call
from ..validators import validate_script_id
from .service import get_script_service, wraps_remote_errors

logger = logging.getLogger(__name__)


def _script_error(error: dict) -> dict:
    """Flatten the Operation.error status into message/type/stack."""
    details = (error.get("details") or [{}])[0]
    return {
        "message": details.get("errorMessage") or error.get("message", "Script execution error"),
        "type": details.get("errorType"),
        "code": error.get("code"),
        "stackTrace": details.get("scriptStackTraceElements", []),
    }


@wraps_remote_errors("Execute function")
@time_api_call
def execute_function(
    auth,
    script_id: str,
    function_name: str,
    parameters: Optional[list] = None,
    dev_mode: bool = False,
) -> dict:
    """
    Execute a function in a project.

    Transport failures raise RemoteApiError. An error thrown by the script
    itself does not raise; it comes back under the 'error' key, so callers
    must check for it.

    Args:
        function_name: Name of a top-level function in the project
        parameters: Positional arguments (JSON-compatible values)
        dev_mode: Run the latest saved code instead of the deployed version

    Returns:
        On success: {function, parameters, response, executed_at}
        On script error: {function, parameters, error}
    """
    validate_script_id(script_id)
    service = get_script_service(auth)
    parameters = list(parameters or [])
    body = {"function": function_name, "parameters": parameters, "devMode": dev_mode}

    operation = service.scripts().run(scriptId=script_id, body=body).execute()

    if "error" in operation:
        error = _script_error(operation["error"])
        logger.warning(f"Function '{function_name}' in {script_id} raised: {error['message']}")
        return {"function": function_name, "parameters": parameters, "error": error}

    result = operation.get("response", {}).get("result")
    return {
        "function": function_name,
        "parameters": parameters,
        "response": result,
        "executed_at": datetime.now(timezone.utc).isoformat(),
    }
