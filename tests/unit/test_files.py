"""Tests for file-level project operations and the revision check."""

import logging

import pytest

from gasmcp.sdk.exceptions import ConflictError, FileNotFoundInProjectError, LocalPathError, ValidationError
from gasmcp.sdk.script import files as files_module
from gasmcp.sdk.script.files import (
    create_file,
    delete_file,
    get_file,
    modify_files,
    read_files,
    revision_of,
    update_file,
)


def test_revision_is_stable_and_content_sensitive():
    a = [{"name": "Code", "type": "SERVER_JS", "source": "x"}]
    b = [{"source": "x", "type": "SERVER_JS", "name": "Code", "functionSet": {}}]
    assert revision_of(a) == revision_of(b)
    assert revision_of(a) != revision_of([{"name": "Code", "type": "SERVER_JS", "source": "y"}])


def test_update_file_changes_only_target(fake_auth, script_service):
    # Arrange
    script_id = script_service.add_project("Many", files=[
        {"name": f"file{i}", "type": "SERVER_JS", "source": f"// {i}"} for i in range(5)
    ])

    # Action
    result = update_file(fake_auth, script_id, "file2", "// changed")

    # Assertion
    files = script_service.files_of(script_id)
    assert len(files) == 5
    assert [f["name"] for f in files] == [f"file{i}" for i in range(5)]
    assert files[2]["source"] == "// changed"
    for i in (0, 1, 3, 4):
        assert files[i]["source"] == f"// {i}"
    assert result["file"]["source"] == "// changed"
    assert result["revision"] == revision_of(files)


def test_update_missing_file_writes_nothing(fake_auth, script_service, project_id):
    before = [dict(f) for f in script_service.files_of(project_id)]

    with pytest.raises(FileNotFoundInProjectError) as exc:
        update_file(fake_auth, project_id, "Nope", "// x")

    assert "Nope" in str(exc.value)
    assert script_service.update_calls == []
    assert script_service.files_of(project_id) == before


def test_delete_file(fake_auth, script_service, project_id):
    result = delete_file(fake_auth, project_id, "Code")

    assert result["deleted"] == "Code"
    assert result["remaining"] == 1
    assert [f["name"] for f in script_service.files_of(project_id)] == ["appsscript"]


def test_delete_missing_file_writes_nothing(fake_auth, script_service, project_id):
    with pytest.raises(FileNotFoundInProjectError):
        delete_file(fake_auth, project_id, "Missing")
    assert script_service.update_calls == []


def test_create_file_appends(fake_auth, script_service, project_id):
    result = create_file(fake_auth, project_id, "index", "HTML", "<p>hi</p>")

    names = [f["name"] for f in script_service.files_of(project_id)]
    assert names == ["Code", "appsscript", "index"]
    assert result["file"] == {"name": "index", "type": "HTML", "source": "<p>hi</p>"}


def test_create_file_rejects_duplicate_and_bad_type(fake_auth, script_service, project_id):
    with pytest.raises(ValidationError, match="already exists"):
        create_file(fake_auth, project_id, "Code", "SERVER_JS", "")
    with pytest.raises(ValidationError, match="Invalid file type"):
        create_file(fake_auth, project_id, "x", "PYTHON", "")
    assert script_service.update_calls == []


def test_get_file(fake_auth, project_id):
    result = get_file(fake_auth, project_id, "Code")
    assert result["file"]["type"] == "SERVER_JS"
    assert result["revision"] == read_files(fake_auth, project_id)[1]

    with pytest.raises(FileNotFoundInProjectError):
        get_file(fake_auth, project_id, "Other")


def test_stale_expected_revision_is_rejected(fake_auth, script_service, project_id):
    seen = get_file(fake_auth, project_id, "Code")["revision"]
    update_file(fake_auth, project_id, "Code", "// someone else")

    with pytest.raises(ConflictError):
        update_file(fake_auth, project_id, "Code", "// mine", expected_revision=seen)

    assert script_service.files_of(project_id)[0]["source"] == "// someone else"


def test_concurrent_change_between_read_and_write_aborts(fake_auth, script_service, project_id):
    # Arrange: another writer lands after our first read
    def interfere(script_id, call_number):
        if call_number == 2:
            script_service.files_of(script_id)[1]["source"] = "{}"

    script_service.get_content_hook = interfere

    # Action / Assertion
    with pytest.raises(ConflictError, match="concurrently"):
        modify_files(fake_auth, project_id, lambda files: files)
    assert script_service.update_calls == []


def test_local_path_is_rejected_before_any_call(fake_auth, script_service):
    with pytest.raises(LocalPathError):
        update_file(fake_auth, "./my-project", "Code", "")
    assert script_service.get_content_calls == 0


def test_remote_failure_becomes_remote_api_error(fake_auth, monkeypatch, project_id):
    from gasmcp.sdk.exceptions import RemoteApiError

    def boom(*args, **kwargs):
        raise RuntimeError("socket closed")

    monkeypatch.setattr(files_module, "modify_files", boom)
    with pytest.raises(RemoteApiError, match="Update file failed: socket closed"):
        update_file(fake_auth, project_id, "Code", "")


def test_calls_are_timed(fake_auth, project_id, caplog):
    with caplog.at_level(logging.DEBUG, logger="gasmcp.sdk.timing"):
        read_files(fake_auth, project_id)
    assert f"API call 'read_files' for {project_id} took" in caplog.text
