"""Apps Script project operations."""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from ..timing import time_api_call
from ..validators import validate_script_id
from .deployments import list_deployments
from .files import revision_of
from .libraries import list_libraries
from .service import get_script_service, get_drive_service, wraps_remote_errors, SCRIPT_MIME_TYPE

logger = logging.getLogger(__name__)


def project_url(script_id: str) -> str:
    return f"https://script.google.com/d/{script_id}/edit"


@wraps_remote_errors("Create project")
@time_api_call
def create_project(auth, title: str, parent_id: Optional[str] = None) -> dict:
    """
    Create a new Apps Script project.

    Args:
        auth: Authenticated Authenticator
        title: Project title
        parent_id: Optional Drive file ID to bind the script to

    Returns:
        Dict with scriptId, title, createTime, updateTime, url
    """
    service = get_script_service(auth)
    body = {"title": title}
    if parent_id:
        body["parentId"] = parent_id

    project = service.projects().create(body=body).execute()
    script_id = project.get("scriptId")
    logger.info(f"Created project '{title}' ({script_id})")
    return {
        "scriptId": script_id,
        "title": project.get("title", title),
        "createTime": project.get("createTime"),
        "updateTime": project.get("updateTime"),
        "url": project_url(script_id),
    }


@wraps_remote_errors("List projects")
@time_api_call
def list_projects(auth, page_size: int = 10, page_token: Optional[str] = None) -> dict:
    """
    List Apps Script projects visible in Drive.

    Returns:
        Dict with 'projects' (scriptId, title, createTime, updateTime, url)
        and 'nextPageToken'
    """
    drive = get_drive_service(auth)
    params = {
        "q": f"mimeType='{SCRIPT_MIME_TYPE}' and trashed=false",
        "pageSize": page_size,
        "fields": "nextPageToken, files(id, name, createdTime, modifiedTime, webViewLink)",
    }
    if page_token:
        params["pageToken"] = page_token

    response = drive.files().list(**params).execute()
    projects = [
        {
            "scriptId": f.get("id"),
            "title": f.get("name"),
            "createTime": f.get("createdTime"),
            "updateTime": f.get("modifiedTime"),
            "url": f.get("webViewLink") or project_url(f.get("id")),
        }
        for f in response.get("files", [])
    ]
    return {"projects": projects, "nextPageToken": response.get("nextPageToken")}


@wraps_remote_errors("Get project")
@time_api_call
def get_project(auth, script_id: str, version_number: Optional[int] = None) -> dict:
    """
    Fetch project metadata and its full file collection.

    Args:
        script_id: Apps Script project ID
        version_number: Optional saved version to read instead of HEAD

    Returns:
        Dict with scriptId, title, createTime, updateTime, url, files
    """
    validate_script_id(script_id)
    service = get_script_service(auth)

    project = service.projects().get(scriptId=script_id).execute()
    params = {"scriptId": script_id}
    if version_number is not None:
        params["versionNumber"] = version_number
    content = service.projects().getContent(**params).execute()

    return {
        "scriptId": script_id,
        "title": project.get("title"),
        "createTime": project.get("createTime"),
        "updateTime": project.get("updateTime"),
        "parentId": project.get("parentId"),
        "url": project_url(script_id),
        "files": content.get("files", []),
        "revision": revision_of(content.get("files", [])),
    }


@wraps_remote_errors("Update project")
@time_api_call
def update_project(auth, script_id: str, content: dict) -> dict:
    """
    Replace a project's entire content.

    Args:
        content: Body with a 'files' list of {name, type, source}

    Returns:
        Dict with scriptId and the written files
    """
    validate_script_id(script_id)
    service = get_script_service(auth)
    result = service.projects().updateContent(scriptId=script_id, body=content).execute()
    files = result.get("files", [])
    logger.info(f"Updated project {script_id} ({len(files)} files)")
    return {"scriptId": script_id, "files": files}


@wraps_remote_errors("Get metrics")
@time_api_call
def get_metrics(
    auth,
    script_id: str,
    granularity: str = "DAILY",
    deployment_id: Optional[str] = None,
) -> dict:
    """
    Usage metrics (active users, executions, failures) for a project.

    Args:
        granularity: 'DAILY' or 'WEEKLY'
        deployment_id: Optional filter to one deployment
    """
    validate_script_id(script_id)
    service = get_script_service(auth)
    params = {"scriptId": script_id, "metricsGranularity": granularity}
    if deployment_id:
        params["metricsFilter_deploymentId"] = deployment_id
    return service.projects().getMetrics(**params).execute()


def get_project_stats(auth, script_id: str) -> dict:
    """File, line, deployment and library counts for a project."""
    project = get_project(auth, script_id)
    files = project["files"]
    deployments = list_deployments(auth, script_id)
    libraries = list_libraries(auth, script_id)

    return {
        "projectInfo": {
            "scriptId": script_id,
            "title": project.get("title"),
            "createTime": project.get("createTime"),
            "updateTime": project.get("updateTime"),
        },
        "files": {
            "total": len(files),
            "types": dict(Counter(f.get("type") for f in files)),
            "totalLines": sum(len(f["source"].split("\n")) for f in files if f.get("source")),
        },
        "deployments": {"total": len(deployments["deployments"])},
        "libraries": {"total": len(libraries["libraries"])},
    }


def backup_project(auth, script_id: str) -> dict:
    """Snapshot of a project's content, deployments and libraries."""
    project = get_project(auth, script_id)
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "project": project,
        "deployments": list_deployments(auth, script_id)["deployments"],
        "libraries": list_libraries(auth, script_id)["libraries"],
    }
