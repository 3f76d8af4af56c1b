"""Apps Script API SDK module.

Thin wrappers around the Apps Script and Drive APIs. Every function takes
an authenticated Authenticator as its first argument.
"""

from .service import get_script_service, get_drive_service
from .projects import (
    create_project, list_projects, get_project, update_project,
    get_metrics, get_project_stats, backup_project,
)
from .files import create_file, get_file, update_file, delete_file, FILE_TYPES
from .execution import execute_function
from .deployments import deploy_web_app, list_deployments, create_version
from .triggers import manage_triggers
from .logs import get_logs
from .libraries import manage_libraries
from .snippets import run_snippet, sweep_temp_files

__all__ = [
    "get_script_service",
    "get_drive_service",
    "create_project",
    "list_projects",
    "get_project",
    "update_project",
    "get_metrics",
    "get_project_stats",
    "backup_project",
    "create_file",
    "get_file",
    "update_file",
    "delete_file",
    "FILE_TYPES",
    "execute_function",
    "deploy_web_app",
    "list_deployments",
    "create_version",
    "manage_triggers",
    "get_logs",
    "manage_libraries",
    "run_snippet",
    "sweep_temp_files",
]
