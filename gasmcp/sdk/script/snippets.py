"""Run short generated Apps Script snippets inside a project.

Some things (script properties, installable triggers) have no REST API and
are only reachable from code running inside the project. For those we
upload a throwaway file holding one function, run it, and remove the file.

Temp files are named ``_gasmcp_tmp_<op>_<epoch ms>_<token>``. Every upload
also drops temp files older than STALE_AFTER_SECONDS, so files leaked by a
process that died mid-operation are cleaned up by the next one. Arguments
reach the snippet as a JSON literal, never spliced into code.
"""

import json
import logging
import re
import secrets
import time
from contextlib import contextmanager
from typing import Any, Optional

from ..exceptions import RemoteApiError, ValidationError
from ..validators import validate_script_id
from .execution import execute_function
from .files import modify_files, read_files
from .service import wraps_remote_errors

logger = logging.getLogger(__name__)

TEMP_PREFIX = "_gasmcp_tmp_"
STALE_AFTER_SECONDS = 600
TEMP_NAME_REGEX = re.compile(r"^_gasmcp_tmp_([a-z][a-z_]*)_(\d+)_([0-9a-f]{8})$")
OP_REGEX = re.compile(r"^[a-z][a-z_]*$")


def temp_names(op: str, now_ms: Optional[int] = None) -> tuple[str, str]:
    """Return (file name, function name) for a new temp script."""
    if not OP_REGEX.match(op):
        raise ValidationError(f"Invalid snippet operation name '{op}'")
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    token = secrets.token_hex(4)
    return f"{TEMP_PREFIX}{op}_{now_ms}_{token}", f"gasmcp_{op}_{token}"


def render_snippet(function_name: str, body: str, args: Any) -> str:
    """Wrap a snippet body in its handler with `args` bound to the JSON arguments."""
    indented = "\n".join(f"  {line}" if line else line for line in body.strip("\n").split("\n"))
    return (
        f"function {function_name}() {{\n"
        f"  var args = {json.dumps(args)};\n"
        f"{indented}\n"
        f"}}\n"
    )


def is_stale(name: str, now_ms: int, max_age_seconds: int = STALE_AFTER_SECONDS) -> bool:
    match = TEMP_NAME_REGEX.match(name or "")
    if not match:
        return False
    return now_ms - int(match.group(2)) >= max_age_seconds * 1000


def _without_stale(files: list, now_ms: int, max_age_seconds: int) -> list:
    kept = []
    for f in files:
        if is_stale(f.get("name"), now_ms, max_age_seconds):
            logger.info(f"Removing orphaned temp file '{f['name']}'")
            continue
        kept.append(f)
    return kept


@contextmanager
def temporary_script(auth, script_id: str, op: str, body: str, args: Any = None):
    """
    Upload a temp script for the duration of the block.

    Yields the function name to execute. The file is removed on every exit
    path; a failed removal is logged and never hides the block's own error.
    """
    now_ms = int(time.time() * 1000)
    file_name, function_name = temp_names(op, now_ms)
    temp_file = {
        "name": file_name,
        "type": "SERVER_JS",
        "source": render_snippet(function_name, body, args if args is not None else {}),
    }

    def add(files):
        return _without_stale(files, now_ms, STALE_AFTER_SECONDS) + [temp_file]

    modify_files(auth, script_id, add)
    logger.debug(f"Uploaded temp script '{file_name}' to {script_id}")
    try:
        yield function_name
    finally:
        try:
            modify_files(auth, script_id, lambda files: [f for f in files if f.get("name") != file_name])
            logger.debug(f"Removed temp script '{file_name}' from {script_id}")
        except Exception as e:
            logger.error(
                f"Could not remove temp script '{file_name}' from {script_id}: {e}. "
                "It will be swept on the next snippet run."
            )


@wraps_remote_errors("Script operation")
def run_snippet(auth, script_id: str, op: str, body: str, args: Any = None) -> Any:
    """
    Execute a snippet and return its return value.

    Raises:
        RemoteApiError: If the snippet threw inside Apps Script
    """
    with temporary_script(auth, script_id, op, body, args) as function_name:
        result = execute_function(auth, script_id, function_name, [], dev_mode=True)
    if "error" in result:
        raise RemoteApiError(f"Script operation '{op}' failed: {result['error']['message']}")
    return result.get("response")


@wraps_remote_errors("Sweep temp files")
def sweep_temp_files(auth, script_id: str, max_age_seconds: int = 0) -> dict:
    """
    Delete leftover temp scripts from a project.

    Args:
        max_age_seconds: Only remove files at least this old (0 removes all)

    Returns:
        Dict with the removed file names
    """
    validate_script_id(script_id)
    now_ms = int(time.time() * 1000)
    files, _ = read_files(auth, script_id)
    if not any(is_stale(f.get("name"), now_ms, max_age_seconds) for f in files):
        return {"scriptId": script_id, "removed": []}

    removed = []

    def sweep(files):
        kept = []
        for f in files:
            if is_stale(f.get("name"), now_ms, max_age_seconds):
                removed.append(f["name"])
            else:
                kept.append(f)
        return kept

    modify_files(auth, script_id, sweep)
    if removed:
        logger.info(f"Swept {len(removed)} temp files from {script_id}")
    return {"scriptId": script_id, "removed": removed}
