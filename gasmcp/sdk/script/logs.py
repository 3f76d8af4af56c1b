"""Execution logs (script processes)."""

import logging
from typing import Optional

from ..timing import time_api_call
from ..validators import validate_script_id
from .service import get_script_service, wraps_remote_errors

logger = logging.getLogger(__name__)


@wraps_remote_errors("Get logs")
@time_api_call
def get_logs(
    auth,
    script_id: str,
    page_size: int = 100,
    page_token: Optional[str] = None,
    function_name: Optional[str] = None,
    statuses: Optional[list] = None,
) -> dict:
    """
    List recent executions of a project.

    Args:
        page_size: Max number of processes to return
        page_token: Token from a previous call's nextPageToken
        function_name: Only executions of this function
        statuses: Only executions in these states (e.g. COMPLETED, FAILED, TIMED_OUT)

    Returns:
        Dict with 'executions' (functionName, processType, processStatus,
        startTime, duration) and 'nextPageToken'
    """
    validate_script_id(script_id)
    service = get_script_service(auth)
    params = {"scriptId": script_id, "pageSize": page_size}
    if page_token:
        params["pageToken"] = page_token
    if function_name:
        params["scriptProcessFilter_functionName"] = function_name
    if statuses:
        params["scriptProcessFilter_statuses"] = list(statuses)

    response = service.processes().listScriptProcesses(**params).execute()
    executions = [
        {
            "functionName": p.get("functionName"),
            "processType": p.get("processType"),
            "processStatus": p.get("processStatus"),
            "startTime": p.get("startTime"),
            "duration": p.get("duration"),
            "userAccessLevel": p.get("userAccessLevel"),
        }
        for p in response.get("processes", [])
    ]
    logger.debug(f"Fetched {len(executions)} executions for {script_id}")
    return {"executions": executions, "nextPageToken": response.get("nextPageToken")}
