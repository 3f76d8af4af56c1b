"""Library dependencies declared in the project manifest (appsscript.json)."""

import json
import logging
from typing import Optional

from ..exceptions import FileNotFoundInProjectError, ValidationError
from ..validators import validate_script_id
from .files import find_file, modify_files, read_files
from .service import wraps_remote_errors

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "appsscript"
LIBRARY_ACTIONS = ("list", "add", "remove", "update")


def _manifest_libraries(manifest: dict) -> list:
    return manifest.setdefault("dependencies", {}).setdefault("libraries", [])


def _edit_manifest(auth, script_id: str, edit) -> dict:
    """Apply `edit(manifest) -> result` to the manifest file and write it back."""
    outcome = {}

    def mutate(files):
        manifest_file = find_file(files, MANIFEST_FILE_NAME)
        if not manifest_file:
            raise FileNotFoundInProjectError(script_id, MANIFEST_FILE_NAME)
        try:
            manifest = json.loads(manifest_file.get("source") or "{}")
        except json.JSONDecodeError as e:
            raise ValidationError(f"Manifest of {script_id} is not valid JSON: {e}") from e
        outcome.update(edit(manifest))
        manifest_file["source"] = json.dumps(manifest, indent=2)
        return files

    modify_files(auth, script_id, mutate)
    return outcome


@wraps_remote_errors("List libraries")
def list_libraries(auth, script_id: str) -> dict:
    """
    Libraries declared in the manifest.

    A missing or unparseable manifest yields an empty list.
    """
    validate_script_id(script_id)
    files, _ = read_files(auth, script_id)
    manifest_file = find_file(files, MANIFEST_FILE_NAME)
    if not manifest_file:
        return {"libraries": []}
    try:
        manifest = json.loads(manifest_file.get("source") or "{}")
    except json.JSONDecodeError:
        logger.warning(f"Manifest of {script_id} is not valid JSON; reporting no libraries")
        return {"libraries": []}
    if not isinstance(manifest, dict):
        return {"libraries": []}
    return {"libraries": (manifest.get("dependencies") or {}).get("libraries") or []}


@wraps_remote_errors("Add library")
def add_library(auth, script_id: str, library_id: str, version: str, identifier: str) -> dict:
    if not (library_id and version and identifier):
        raise ValidationError("Adding a library requires library_id, version and identifier")

    def edit(manifest):
        libraries = _manifest_libraries(manifest)
        if any(lib.get("libraryId") == library_id for lib in libraries):
            raise ValidationError(f"Library '{library_id}' is already in the manifest")
        libraries.append({"userSymbol": identifier, "libraryId": library_id, "version": str(version)})
        return {"added": identifier, "libraryId": library_id, "version": str(version)}

    result = _edit_manifest(auth, script_id, edit)
    logger.info(f"Added library '{identifier}' to {script_id}")
    return result


@wraps_remote_errors("Remove library")
def remove_library(auth, script_id: str, library_id: str) -> dict:
    if not library_id:
        raise ValidationError("Removing a library requires library_id")

    def edit(manifest):
        libraries = _manifest_libraries(manifest)
        remaining = [lib for lib in libraries if lib.get("libraryId") != library_id]
        if len(remaining) == len(libraries):
            raise ValidationError(f"Library '{library_id}' not found in manifest")
        manifest["dependencies"]["libraries"] = remaining
        return {"removed": library_id, "remainingLibraries": len(remaining)}

    result = _edit_manifest(auth, script_id, edit)
    logger.info(f"Removed library '{library_id}' from {script_id}")
    return result


@wraps_remote_errors("Update library")
def update_library(auth, script_id: str, library_id: str, version: str) -> dict:
    if not (library_id and version):
        raise ValidationError("Updating a library requires library_id and version")

    def edit(manifest):
        for lib in _manifest_libraries(manifest):
            if lib.get("libraryId") == library_id:
                old_version = lib.get("version")
                lib["version"] = str(version)
                return {
                    "updated": lib.get("userSymbol"),
                    "libraryId": library_id,
                    "oldVersion": old_version,
                    "newVersion": str(version),
                }
        raise ValidationError(f"Library '{library_id}' not found in manifest")

    result = _edit_manifest(auth, script_id, edit)
    logger.info(f"Updated library '{library_id}' in {script_id} to version {version}")
    return result


def manage_libraries(
    auth,
    script_id: str,
    action: str,
    library_id: Optional[str] = None,
    version: Optional[str] = None,
    identifier: Optional[str] = None,
) -> dict:
    """Dispatch a library action: list, add, remove or update."""
    if action == "list":
        return list_libraries(auth, script_id)
    if action == "add":
        return add_library(auth, script_id, library_id, version, identifier)
    if action == "remove":
        return remove_library(auth, script_id, library_id)
    if action == "update":
        return update_library(auth, script_id, library_id, version)
    raise ValidationError(f"Unknown library action '{action}'. Expected one of: {', '.join(LIBRARY_ACTIONS)}")
