"""Versions and deployments."""

import logging
from typing import Optional

from ..timing import time_api_call
from ..validators import validate_script_id
from .service import get_script_service, wraps_remote_errors

logger = logging.getLogger(__name__)


def web_app_url(deployment: dict) -> Optional[str]:
    for entry in deployment.get("entryPoints", []):
        if entry.get("entryPointType") == "WEB_APP":
            return entry.get("webApp", {}).get("url")
    return None


@wraps_remote_errors("Create version")
@time_api_call
def create_version(auth, script_id: str, description: str = "") -> dict:
    """Save an immutable version of the current HEAD content."""
    validate_script_id(script_id)
    service = get_script_service(auth)
    version = service.projects().versions().create(
        scriptId=script_id, body={"description": description}
    ).execute()
    logger.info(f"Created version {version.get('versionNumber')} of {script_id}")
    return version


@wraps_remote_errors("Deploy web app")
@time_api_call
def deploy_web_app(
    auth,
    script_id: str,
    version_number: Optional[int] = None,
    manifest_file_name: str = "appsscript",
    description: str = "",
) -> dict:
    """
    Create a deployment, saving a new version first if none is given.

    The web app entry point itself comes from the manifest's 'webapp'
    section; without it the deployment has no URL.

    Returns:
        Dict with deploymentId, versionNumber, entryPoints, updateTime,
        description and url (None when the manifest has no web app)
    """
    validate_script_id(script_id)
    if version_number is None:
        version_number = create_version(auth, script_id, description)["versionNumber"]

    service = get_script_service(auth)
    deployment = service.projects().deployments().create(
        scriptId=script_id,
        body={
            "versionNumber": version_number,
            "manifestFileName": manifest_file_name,
            "description": description,
        },
    ).execute()
    logger.info(f"Deployed {script_id} version {version_number}: {deployment.get('deploymentId')}")
    return {
        "deploymentId": deployment.get("deploymentId"),
        "versionNumber": version_number,
        "entryPoints": deployment.get("entryPoints", []),
        "updateTime": deployment.get("updateTime"),
        "description": description,
        "url": web_app_url(deployment),
    }


@wraps_remote_errors("List deployments")
@time_api_call
def list_deployments(auth, script_id: str) -> dict:
    validate_script_id(script_id)
    service = get_script_service(auth)
    response = service.projects().deployments().list(scriptId=script_id).execute()
    deployments = []
    for d in response.get("deployments", []):
        config = d.get("deploymentConfig", {})
        deployments.append({
            "deploymentId": d.get("deploymentId"),
            "versionNumber": config.get("versionNumber"),
            "description": config.get("description", ""),
            "updateTime": d.get("updateTime"),
            "url": web_app_url(d),
        })
    return {"deployments": deployments}
