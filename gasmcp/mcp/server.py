"""gas-mcp MCP Server - Exposes Google Apps Script operations via MCP.

Tools fall into two groups:

- Apps Script API tools (projects, files, execution, deployments, triggers,
  logs, libraries, script properties). These authenticate with Google
  before running.
- clasp tools (clasp_*) that drive the local clasp CLI in a project
  directory. These never touch Google credentials directly.

Every tool returns a single text block. Failures are returned as
"Tool execution failed: <message>" rather than raised.
"""

import asyncio
import json
import logging
import signal
import sys
from typing import Any, Literal, Optional, Union

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from gasmcp.sdk import script
from gasmcp.sdk.config import load_settings, validate_environment, configure_logging
from gasmcp.sdk.context import build_context
from gasmcp.sdk.crypto import mask_secret
from gasmcp.sdk.exceptions import GASError, ValidationError

from .registry import gas_tool, get_context, set_context, dispatch, TOOLS

logger = logging.getLogger(__name__)

# Create the MCP server
mcp = FastMCP("gas-mcp")

Environment = Literal["development", "staging", "production"]
ProjectType = Literal["standalone", "webapp", "api", "sheets", "docs", "slides", "forms"]
FileType = Literal["SERVER_JS", "HTML", "JSON"]


def render(title: str, data: Any = None) -> str:
    """Headline plus pretty JSON body."""
    if data is None:
        return title
    return f"{title}\n\n{json.dumps(data, indent=2, ensure_ascii=False, default=str)}"


def format_files(files: list, include_source: bool) -> list:
    if include_source:
        return files
    return [
        {"name": f.get("name"), "type": f.get("type"), "lines": len((f.get("source") or "").split("\n"))}
        for f in files
    ]


# =============================================================================
# clasp Tools
# =============================================================================

@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_setup(
    auto_install: bool = True,
    auto_login: bool = True,
    no_localhost: bool = False,
    creds: Optional[str] = None,
) -> str:
    """
    Check and prepare the local clasp installation.

    Installs @google/clasp with npm if it is missing and reports the version
    and login state. Login needs a browser, so it cannot run inside this
    server; when clasp is not logged in the result says so and you should
    run 'gasmcp clasp-login' in a terminal.

    Args:
        auto_install: Install clasp globally with npm if not found (default: True).
        auto_login: Report a pending login as 'login_required' (default: True).
        no_localhost: Passed to the login hint for headless machines.
        creds: Optional OAuth client file for clasp login.

    Returns:
        Installation, version and login status.
    """
    clasp = get_context().clasp
    result = await asyncio.to_thread(
        clasp.setup,
        auto_install=auto_install,
        auto_login=auto_login,
        allow_interactive=False,
        no_localhost=no_localhost,
        creds=creds,
    )
    title = "clasp is ready" if result["status"] == "success" else "clasp needs login"
    return render(title, result)


@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_create(
    project_name: str,
    project_type: ProjectType = "standalone",
    title: Optional[str] = None,
    directory: Optional[str] = None,
    parent_id: Optional[str] = None,
    create_initial_files: bool = True,
) -> str:
    """
    Create a new Apps Script project with clasp in a local directory.

    Args:
        project_name: Local project name (also the default directory and title).
        project_type: standalone, webapp, api, sheets, docs, slides or forms.
        title: Project title in Apps Script (default: project_name).
        directory: Target directory (default: ./<project_name>).
        parent_id: Drive file ID of a document to bind the script to.
        create_initial_files: Write starter Code.js/appsscript.json (and index.html for webapp).

    Returns:
        scriptId, local directory and the .clasp.json contents.
    """
    clasp = get_context().clasp
    result = await asyncio.to_thread(
        clasp.create_project,
        project_name,
        project_type=project_type,
        title=title,
        directory=directory,
        parent_id=parent_id,
        create_initial_files=create_initial_files,
    )
    return render(f"Created clasp project '{project_name}' ({result['scriptId']})", result)


@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_clone(script_id: str, directory: Optional[str] = None) -> str:
    """
    Clone an existing Apps Script project to a local directory.

    Args:
        script_id: The Apps Script project ID.
        directory: Target directory (default: ./gas-project-<script_id>).
    """
    clasp = get_context().clasp
    result = await asyncio.to_thread(clasp.clone_project, script_id, directory=directory)
    return render(f"Cloned {script_id} into {result['cloneDir']}", result)


@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_pull(
    project_dir: str,
    environment: Optional[Environment] = None,
    version_number: Optional[int] = None,
) -> str:
    """
    Pull remote changes into a local clasp project.

    Args:
        project_dir: Local project directory containing .clasp.json.
        environment: Switch to .clasp.<environment>.json first (development, staging, production).
        version_number: Pull a specific saved version instead of HEAD.

    Returns:
        Changed files. 'formatRecognized: false' means clasp printed lines this
        server could not parse; check 'unparsedLines'.
    """
    clasp = get_context().clasp
    result = await asyncio.to_thread(
        clasp.pull, project_dir, environment=environment, version_number=version_number
    )
    return render(f"Pulled {len(result['changedFiles'])} file(s) into {project_dir}", result)


@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_push_and_deploy(
    project_dir: str,
    environment: Optional[Environment] = None,
    deploy: bool = True,
    force: bool = False,
    deploy_description: Optional[str] = None,
    version_number: Optional[int] = None,
) -> str:
    """
    Push a local clasp project and optionally deploy it.

    Args:
        project_dir: Local project directory containing .clasp.json.
        environment: Switch to .clasp.<environment>.json first.
        deploy: Create a deployment after pushing (default: True).
        force: Overwrite the remote manifest without prompting.
        deploy_description: Deployment description (default: timestamp).
        version_number: Deploy an existing version instead of a new one.
    """
    clasp = get_context().clasp
    result = await asyncio.to_thread(
        clasp.push_and_deploy,
        project_dir,
        environment=environment,
        deploy=deploy,
        force=force,
        deploy_description=deploy_description,
        version_number=version_number,
    )
    title = "Pushed and deployed" if deploy else "Pushed"
    if result.get("deployUrl"):
        title += f": {result['deployUrl']}"
    return render(title, result)


@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_list() -> str:
    """List the Apps Script projects of the clasp-logged-in account."""
    clasp = get_context().clasp
    result = await asyncio.to_thread(clasp.list_projects)
    return render(f"Found {result['count']} project(s)", result)


@mcp.tool()
@gas_tool(requires_auth=False)
async def clasp_list_accounts() -> str:
    """Show which Google account(s) clasp is logged in with."""
    clasp = get_context().clasp
    result = await asyncio.to_thread(clasp.list_accounts)
    title = "clasp accounts" if result["logged_in"] else "clasp is not logged in"
    return render(title, result)


# =============================================================================
# Project Tools
# =============================================================================

@mcp.tool()
@gas_tool()
async def create_gas_project(title: str, parent_id: Optional[str] = None) -> str:
    """
    Create a new Apps Script project.

    Args:
        title: Project title.
        parent_id: Optional Drive file ID (Sheet, Doc, Form, Slides) to bind to.

    Returns:
        scriptId, title, timestamps and editor URL.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(script.create_project, auth, title, parent_id)
    return render(f"Created project '{title}'", result)


@mcp.tool()
@gas_tool()
async def list_gas_projects(page_size: int = 10, page_token: Optional[str] = None) -> str:
    """
    List Apps Script projects visible in Google Drive.

    Args:
        page_size: Max projects to return (default: 10).
        page_token: nextPageToken from a previous call.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(script.list_projects, auth, page_size, page_token)
    return render(f"Found {len(result['projects'])} project(s)", result)


@mcp.tool()
@gas_tool()
async def get_gas_project(
    script_id: str,
    version_number: Optional[int] = None,
    include_source: bool = True,
) -> str:
    """
    Get a project's metadata and files.

    Args:
        script_id: The Apps Script project ID.
        version_number: Read a saved version instead of HEAD.
        include_source: Include file sources (default: True); False lists names and line counts.

    Returns:
        Project details including 'revision', which update_gas_file and
        delete_gas_file accept as expected_revision.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(script.get_project, auth, script_id, version_number)
    result["files"] = format_files(result["files"], include_source)
    return render(f"Project '{result.get('title')}' ({len(result['files'])} files)", result)


@mcp.tool()
@gas_tool()
async def update_gas_project(script_id: str, files: list[dict]) -> str:
    """
    Replace a project's entire content.

    Every file not included is deleted from the project.

    Args:
        script_id: The Apps Script project ID.
        files: Complete file list, each {"name", "type", "source"} with type
               SERVER_JS, HTML or JSON. The manifest is {"name": "appsscript", "type": "JSON"}.
    """
    for f in files:
        if f.get("type") not in script.FILE_TYPES or not f.get("name"):
            raise ValidationError(f"Invalid file entry: {f.get('name')!r} ({f.get('type')!r})")
    auth = get_context().auth
    result = await asyncio.to_thread(script.update_project, auth, script_id, {"files": files})
    return render(f"Updated project {script_id} ({len(result['files'])} files)", format_files(result["files"], False))


@mcp.tool()
@gas_tool()
async def get_gas_project_stats(script_id: str) -> str:
    """File counts by type, total lines, deployments and libraries of a project."""
    auth = get_context().auth
    result = await asyncio.to_thread(script.get_project_stats, auth, script_id)
    return render(f"Statistics for {script_id}", result)


@mcp.tool()
@gas_tool()
async def backup_gas_project(script_id: str) -> str:
    """Snapshot a project's files, deployments and libraries as JSON."""
    auth = get_context().auth
    result = await asyncio.to_thread(script.backup_project, auth, script_id)
    return render(f"Backup of {script_id}", result)


# =============================================================================
# File Tools
# =============================================================================

@mcp.tool()
@gas_tool()
async def create_gas_file(script_id: str, name: str, type: FileType, source: str) -> str:
    """
    Add a file to a project.

    Args:
        script_id: The Apps Script project ID.
        name: File name without extension (e.g. "Code", "index").
        type: SERVER_JS, HTML or JSON.
        source: File contents.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(script.create_file, auth, script_id, name, type, source)
    return render(f"Created file '{name}'", result)


@mcp.tool()
@gas_tool()
async def get_gas_file(script_id: str, name: str) -> str:
    """
    Get one file's source.

    Args:
        script_id: The Apps Script project ID.
        name: File name without extension.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(script.get_file, auth, script_id, name)
    return render(f"File '{name}' ({result['file']['type']})", result)


@mcp.tool()
@gas_tool()
async def update_gas_file(
    script_id: str,
    name: str,
    source: str,
    expected_revision: Optional[str] = None,
) -> str:
    """
    Replace one file's source. Other files are left unchanged.

    Args:
        script_id: The Apps Script project ID.
        name: File name without extension.
        source: New file contents.
        expected_revision: 'revision' from get_gas_file/get_gas_project; if the
            project changed since, the update is refused.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(
        script.update_file, auth, script_id, name, source, expected_revision
    )
    return render(f"Updated file '{name}'", result)


@mcp.tool()
@gas_tool()
async def delete_gas_file(script_id: str, name: str, expected_revision: Optional[str] = None) -> str:
    """
    Delete one file from a project.

    Args:
        script_id: The Apps Script project ID.
        name: File name without extension.
        expected_revision: Optional revision guard, as for update_gas_file.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(script.delete_file, auth, script_id, name, expected_revision)
    return render(f"Deleted file '{name}'", result)


# =============================================================================
# Execution and Deployment Tools
# =============================================================================

@mcp.tool()
@gas_tool()
async def execute_gas_function(
    script_id: str,
    function_name: str,
    parameters: Optional[list] = None,
    dev_mode: bool = False,
) -> str:
    """
    Run a function in a project via the Apps Script API.

    The project must be deployed as an API executable (or use dev_mode with
    the owner's credentials).

    Args:
        script_id: The Apps Script project ID.
        function_name: Top-level function to call.
        parameters: Positional arguments (JSON values).
        dev_mode: Run the latest saved code instead of the deployed version.

    Returns:
        The function's return value, or the script error with its stack trace.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(
        script.execute_function, auth, script_id, function_name, parameters, dev_mode
    )
    if "error" in result:
        return render(f"Function '{function_name}' raised an error", result)
    return render(f"Executed '{function_name}'", result)


@mcp.tool()
@gas_tool()
async def deploy_gas_webapp(
    script_id: str,
    version_number: Optional[int] = None,
    manifest_file_name: str = "appsscript",
    description: str = "",
) -> str:
    """
    Deploy a project. A new version is created when version_number is omitted.

    Args:
        script_id: The Apps Script project ID.
        version_number: Existing version to deploy.
        manifest_file_name: Manifest file name (default: appsscript).
        description: Deployment description.

    Returns:
        deploymentId, versionNumber, entry points and the web app URL when the
        manifest declares one.
    """
    auth = get_context().auth
    result = await asyncio.to_thread(
        script.deploy_web_app, auth, script_id, version_number, manifest_file_name, description
    )
    title = f"Deployed {script_id}"
    if result.get("url"):
        title += f": {result['url']}"
    return render(title, result)


@mcp.tool()
@gas_tool()
async def list_gas_deployments(script_id: str) -> str:
    """List a project's deployments."""
    auth = get_context().auth
    result = await asyncio.to_thread(script.list_deployments, auth, script_id)
    return render(f"Found {len(result['deployments'])} deployment(s)", result)


@mcp.tool()
@gas_tool()
async def manage_gas_triggers(
    script_id: str,
    action: Literal["list", "create", "delete"],
    handler_function: Optional[str] = None,
    event_type: Optional[Literal["CLOCK", "ON_OPEN", "ON_EDIT", "ON_FORM_SUBMIT"]] = None,
    every_minutes: Optional[int] = None,
    every_hours: Optional[int] = None,
    source_type: Optional[Literal["SPREADSHEET", "FORM", "DOCUMENT"]] = None,
    source_id: Optional[str] = None,
    trigger_id: Optional[str] = None,
) -> str:
    """
    List, create or delete installable triggers.

    Triggers are managed by briefly adding a helper script to the project
    and running it (the REST API has no trigger endpoint), so the project
    must be executable through the API.

    Args:
        script_id: The Apps Script project ID.
        action: list, create or delete.
        handler_function: Function the trigger calls (create).
        event_type: CLOCK, ON_OPEN, ON_EDIT or ON_FORM_SUBMIT (create).
        every_minutes: CLOCK interval: 1, 5, 10, 15 or 30.
        every_hours: CLOCK interval: 1, 2, 4, 6, 8 or 12.
        source_type: Container for ON_* triggers (default SPREADSHEET).
        source_id: Container file ID (default: the bound container).
        trigger_id: Trigger to delete (delete).
    """
    auth = get_context().auth
    config = {
        "handler_function": handler_function,
        "event_type": event_type,
        "every_minutes": every_minutes,
        "every_hours": every_hours,
        "source_type": source_type,
        "source_id": source_id,
    }
    result = await asyncio.to_thread(script.manage_triggers, auth, script_id, action, config, trigger_id)
    return render(f"Triggers {action}", result)


@mcp.tool()
@gas_tool()
async def get_gas_logs(
    script_id: str,
    page_size: int = 100,
    page_token: Optional[str] = None,
    function_name: Optional[str] = None,
    statuses: Optional[list[str]] = None,
) -> str:
    """
    Recent executions of a project.

    Args:
        script_id: The Apps Script project ID.
        page_size: Max executions to return (default: 100).
        page_token: nextPageToken from a previous call.
        function_name: Only executions of this function.
        statuses: Only executions in these states (COMPLETED, FAILED, RUNNING, TIMED_OUT, ...).
    """
    auth = get_context().auth
    result = await asyncio.to_thread(
        script.get_logs, auth, script_id, page_size, page_token, function_name, statuses
    )
    return render(f"Found {len(result['executions'])} execution(s)", result)


@mcp.tool()
@gas_tool()
async def get_gas_metrics(
    script_id: str,
    granularity: Literal["DAILY", "WEEKLY"] = "DAILY",
    deployment_id: Optional[str] = None,
) -> str:
    """Active users, total executions and failed executions for a project."""
    auth = get_context().auth
    result = await asyncio.to_thread(script.get_metrics, auth, script_id, granularity, deployment_id)
    return render(f"Metrics for {script_id} ({granularity})", result)


@mcp.tool()
@gas_tool()
async def manage_gas_libraries(
    script_id: str,
    action: Literal["list", "add", "remove", "update"],
    library_id: Optional[str] = None,
    version: Optional[str] = None,
    identifier: Optional[str] = None,
) -> str:
    """
    Manage library dependencies in the project manifest.

    Args:
        script_id: The Apps Script project ID.
        action: list, add, remove or update.
        library_id: Library script ID (add, remove, update).
        version: Library version (add, update).
        identifier: Symbol the library is used under in code (add).
    """
    auth = get_context().auth
    result = await asyncio.to_thread(
        script.manage_libraries, auth, script_id, action, library_id, version, identifier
    )
    return render(f"Libraries {action}", result)


# =============================================================================
# Script Property Tools
# =============================================================================

@mcp.tool()
@gas_tool()
async def set_secure_property(script_id: str, key: str, value: str, encrypt: bool = True) -> str:
    """
    Set a script property, AES-256-GCM encrypted by default.

    Args:
        script_id: The Apps Script project ID.
        key: Property name.
        value: Property value.
        encrypt: Store encrypted (default: True). False stores the value as-is.
    """
    properties = get_context().properties
    result = await asyncio.to_thread(properties.set_secure_property, script_id, key, value, encrypt)
    return render(f"Property '{key}' saved", result)


@mcp.tool()
@gas_tool()
async def get_secure_property(script_id: str, key: str, decrypt: bool = True) -> str:
    """
    Read a script property, decrypting it if it was stored encrypted.

    Args:
        script_id: The Apps Script project ID.
        key: Property name.
        decrypt: Decrypt encrypted values (default: True).
    """
    properties = get_context().properties
    value = await asyncio.to_thread(properties.get_secure_property, script_id, key, decrypt)
    if value is None:
        return f"Property '{key}' is not set"
    return f"Property '{key}':\n\n{value}"


@mcp.tool()
@gas_tool()
async def delete_property(script_id: str, key: str) -> str:
    """Delete a script property."""
    properties = get_context().properties
    result = await asyncio.to_thread(properties.delete_property, script_id, key)
    return render(f"Property '{key}' deleted", result)


@mcp.tool()
@gas_tool()
async def list_properties(script_id: str, decrypt: bool = True, mask_values: bool = True) -> str:
    """
    List all script properties.

    Args:
        script_id: The Apps Script project ID.
        decrypt: Decrypt encrypted values (default: True).
        mask_values: Show only the first and last 4 characters (default: True).
    """
    properties = get_context().properties
    values = await asyncio.to_thread(properties.get_all_properties, script_id, decrypt)
    if mask_values:
        values = {key: mask_secret(value) for key, value in values.items()}
    return render(f"{len(values)} property(ies)", values)


@mcp.tool()
@gas_tool()
async def audit_properties(script_id: str) -> str:
    """
    Report encrypted vs plaintext properties and flag plaintext keys whose
    names look sensitive (api_key, secret, token, password, ...).

    This is keyword-based advice, not a guarantee that nothing sensitive is
    stored in plaintext.
    """
    properties = get_context().properties
    result = await asyncio.to_thread(properties.audit_properties, script_id)
    return render(f"Property audit for {script_id}", result)


@mcp.tool()
@gas_tool()
async def backup_properties(script_id: str, include_encrypted: bool = False) -> str:
    """
    Snapshot all script properties with a SHA-256 checksum.

    Args:
        script_id: The Apps Script project ID.
        include_encrypted: Keep encrypted values as ciphertext (default: False,
            values are decrypted into the backup). Ciphertext backups can only
            be restored with the same ENCRYPTION_KEY.
    """
    properties = get_context().properties
    result = await asyncio.to_thread(properties.backup_properties, script_id, include_encrypted)
    return render(f"Backed up {result['propertyCount']} property(ies)", result)


@mcp.tool()
@gas_tool()
async def restore_properties(
    script_id: str,
    backup: Union[dict, str],
    verify_checksum: bool = True,
) -> str:
    """
    Restore script properties from backup_properties output.

    Args:
        script_id: The Apps Script project ID.
        backup: The backup object (or its JSON text).
        verify_checksum: Refuse to restore if the checksum does not match (default: True).
    """
    if isinstance(backup, str):
        try:
            backup = json.loads(backup)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Backup is not valid JSON: {e}") from e
    properties = get_context().properties
    result = await asyncio.to_thread(properties.restore_properties, script_id, backup, verify_checksum)
    return render(f"Restored {result['restored']} property(ies)", result)


@mcp.tool()
@gas_tool()
async def sweep_temp_files(script_id: str, max_age_seconds: int = 0) -> str:
    """
    Remove helper scripts left behind by interrupted property or trigger operations.

    Args:
        script_id: The Apps Script project ID.
        max_age_seconds: Only remove helpers at least this old (default: 0, all).
    """
    properties = get_context().properties
    result = await asyncio.to_thread(properties.sweep_temp_files, script_id, max_age_seconds)
    return render(f"Removed {len(result['removed'])} temp file(s)", result)


# =============================================================================
# Status
# =============================================================================

@mcp.tool()
@gas_tool(requires_auth=False)
async def get_auth_status() -> str:
    """Which authentication strategy is configured and whether it is active."""
    ctx = get_context()
    info = ctx.auth.get_auth_info()
    info["encryption_key_fingerprint"] = ctx.cipher.fingerprint
    info["encryption_key_generated"] = ctx.cipher.generated
    return render("Authentication status", info)


# =============================================================================
# Server entry point
# =============================================================================

def _handle_sigterm(signum, frame):
    logger.info("Received SIGTERM, shutting down")
    raise SystemExit(0)


def run_server():
    """Run the MCP server with stdio transport."""
    load_dotenv()
    settings = load_settings()
    configure_logging(settings.log_level)

    errors, warnings = validate_environment(settings)
    for warning in warnings:
        logger.warning(warning)
    if errors:
        for error in errors:
            logger.error(error)
        sys.exit(1)

    try:
        set_context(build_context(settings))
    except GASError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)

    signal.signal(signal.SIGTERM, _handle_sigterm)
    logger.info(f"Starting gas-mcp server with {len(TOOLS)} tools")
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    sys.exit(0)


__all__ = ["mcp", "run_server", "dispatch", "TOOLS"]


if __name__ == "__main__":
    run_server()
