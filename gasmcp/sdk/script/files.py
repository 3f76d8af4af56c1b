"""File-level operations on an Apps Script project.

The API only supports replacing a project's whole file collection, so every
mutation here reads the collection, changes it in memory and writes it back.
A revision token (hash of the normalized collection) is taken on read and
checked again right before the write; if anything changed in between the
write is refused with ConflictError instead of clobbering the other change.
Callers that read earlier (for example via get_file) can pass the revision
they saw as expected_revision to extend that check across tool calls.
"""

import hashlib
import json
import logging
from typing import Callable, Optional

from ..exceptions import ConflictError, FileNotFoundInProjectError, ValidationError
from ..timing import time_api_call
from ..validators import validate_script_id
from .service import get_script_service, wraps_remote_errors

logger = logging.getLogger(__name__)

FILE_TYPES = ("SERVER_JS", "HTML", "JSON")


def normalize_file(f: dict) -> dict:
    return {"name": f.get("name"), "type": f.get("type"), "source": f.get("source", "")}


def revision_of(files: list) -> str:
    """Content hash identifying one state of a file collection."""
    normalized = [normalize_file(f) for f in files]
    payload = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def _read_files(service, script_id: str) -> list:
    content = service.projects().getContent(scriptId=script_id).execute()
    return [normalize_file(f) for f in content.get("files", [])]


@time_api_call
def read_files(auth, script_id: str) -> tuple[list, str]:
    """Return (files, revision) for the project's current HEAD content."""
    files = _read_files(get_script_service(auth), script_id)
    return files, revision_of(files)


@time_api_call
def modify_files(
    auth,
    script_id: str,
    mutate: Callable[[list], list],
    expected_revision: Optional[str] = None,
) -> list:
    """
    Read-modify-write the project's file collection.

    Args:
        mutate: Receives the current files and returns the new list. It may
            raise to abort without writing.
        expected_revision: Revision the caller last saw, if any

    Returns:
        The file list that was written

    Raises:
        ConflictError: If the content changed since it was read
    """
    validate_script_id(script_id)
    service = get_script_service(auth)

    files = _read_files(service, script_id)
    revision = revision_of(files)
    if expected_revision and expected_revision != revision:
        raise ConflictError(
            f"Project {script_id} changed since revision {expected_revision} "
            f"(now {revision}); re-read before writing"
        )

    new_files = mutate([dict(f) for f in files])

    if revision_of(_read_files(service, script_id)) != revision:
        raise ConflictError(f"Project {script_id} was modified concurrently; write aborted")

    service.projects().updateContent(scriptId=script_id, body={"files": new_files}).execute()
    logger.debug(f"Wrote {len(new_files)} files to {script_id}")
    return new_files


def find_file(files: list, name: str) -> Optional[dict]:
    for f in files:
        if f.get("name") == name:
            return f
    return None


@wraps_remote_errors("Create file")
def create_file(auth, script_id: str, name: str, file_type: str, source: str) -> dict:
    """
    Add a file to a project.

    Raises:
        ValidationError: If the type is unknown or a file with that name exists
    """
    if file_type not in FILE_TYPES:
        raise ValidationError(f"Invalid file type '{file_type}'. Expected one of: {', '.join(FILE_TYPES)}")
    if not name:
        raise ValidationError("File name cannot be empty")

    new_file = {"name": name, "type": file_type, "source": source}

    def mutate(files):
        if find_file(files, name):
            raise ValidationError(f"File '{name}' already exists in project {script_id}")
        return files + [new_file]

    written = modify_files(auth, script_id, mutate)
    logger.info(f"Created file '{name}' in {script_id}")
    return {"scriptId": script_id, "file": new_file, "revision": revision_of(written)}


@wraps_remote_errors("Get file")
def get_file(auth, script_id: str, name: str) -> dict:
    """
    Fetch one file by name.

    Returns:
        Dict with scriptId, file and the collection revision
    """
    validate_script_id(script_id)
    files, revision = read_files(auth, script_id)
    found = find_file(files, name)
    if not found:
        raise FileNotFoundInProjectError(script_id, name)
    return {"scriptId": script_id, "file": found, "revision": revision}


@wraps_remote_errors("Update file")
def update_file(
    auth,
    script_id: str,
    name: str,
    source: str,
    expected_revision: Optional[str] = None,
) -> dict:
    """
    Replace one file's source, leaving every other file untouched.

    Raises:
        FileNotFoundInProjectError: If no file has that name; nothing is written
    """
    def mutate(files):
        target = find_file(files, name)
        if not target:
            raise FileNotFoundInProjectError(script_id, name)
        target["source"] = source
        return files

    written = modify_files(auth, script_id, mutate, expected_revision=expected_revision)
    logger.info(f"Updated file '{name}' in {script_id}")
    return {"scriptId": script_id, "file": find_file(written, name), "revision": revision_of(written)}


@wraps_remote_errors("Delete file")
def delete_file(auth, script_id: str, name: str, expected_revision: Optional[str] = None) -> dict:
    """Remove one file from a project."""
    def mutate(files):
        if not find_file(files, name):
            raise FileNotFoundInProjectError(script_id, name)
        return [f for f in files if f.get("name") != name]

    written = modify_files(auth, script_id, mutate, expected_revision=expected_revision)
    logger.info(f"Deleted file '{name}' from {script_id}")
    return {"scriptId": script_id, "deleted": name, "remaining": len(written), "revision": revision_of(written)}
