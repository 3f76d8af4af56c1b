"""Tests for temp-script execution and orphan cleanup."""

import json
import time

import pytest

from gasmcp.sdk.exceptions import RemoteApiError, ValidationError
from gasmcp.sdk.script.snippets import (
    TEMP_NAME_REGEX,
    TEMP_PREFIX,
    is_stale,
    render_snippet,
    run_snippet,
    sweep_temp_files,
    temp_names,
    temporary_script,
)

GET_ALL_JS = "return PropertiesService.getScriptProperties().getProperties();"
SET_JS = "PropertiesService.getScriptProperties().setProperty(args.key, args.value);\nreturn true;"


def temp_files(script_service, script_id):
    return [f["name"] for f in script_service.files_of(script_id) if f["name"].startswith(TEMP_PREFIX)]


def test_temp_names_follow_pattern():
    file_name, function_name = temp_names("set_property", 1700000000000)

    match = TEMP_NAME_REGEX.match(file_name)
    assert match
    assert match.group(1) == "set_property"
    assert match.group(2) == "1700000000000"
    assert function_name == f"gasmcp_set_property_{match.group(3)}"


def test_temp_names_reject_odd_ops():
    with pytest.raises(ValidationError):
        temp_names("drop; table")


def test_render_snippet_binds_args_as_json():
    source = render_snippet("gasmcp_x_1234abcd", "return args.key;", {"key": "a\"); evil('"})

    assert source.startswith("function gasmcp_x_1234abcd() {\n")
    args_line = source.split("\n")[1]
    assert json.loads(args_line.strip()[len("var args = "):-1]) == {"key": "a\"); evil('"}
    assert "  return args.key;" in source


def test_is_stale():
    now = 1_000_000_000
    assert is_stale(f"{TEMP_PREFIX}op_{now - 601_000}_deadbeef", now)
    assert not is_stale(f"{TEMP_PREFIX}op_{now - 1_000}_deadbeef", now)
    assert not is_stale("Code", now)
    assert is_stale(f"{TEMP_PREFIX}op_{now}_deadbeef", now, max_age_seconds=0)


def test_snippet_result_and_cleanup(fake_auth, script_service, project_id):
    script_service.properties[project_id] = {"A": "1"}

    assert run_snippet(fake_auth, project_id, "get_all_properties", GET_ALL_JS) == {"A": "1"}
    assert temp_files(script_service, project_id) == []
    _, body = script_service.run_calls[-1]
    assert body["devMode"] is True


def test_untrusted_values_arrive_verbatim(fake_auth, script_service, project_id):
    value = "x'); DriveApp.getRootFolder().setTrashed(true); ('\n\"quoted\""
    run_snippet(fake_auth, project_id, "set_property", SET_JS, {"key": "K", "value": value})
    assert script_service.properties[project_id]["K"] == value


def test_temp_file_removed_when_execution_fails(fake_auth, script_service, project_id):
    script_service.run_exception = RuntimeError("connection reset")

    with pytest.raises(RemoteApiError, match="connection reset"):
        run_snippet(fake_auth, project_id, "get_all_properties", GET_ALL_JS)

    assert temp_files(script_service, project_id) == []


def test_script_error_raises_after_cleanup(fake_auth, script_service, project_id):
    with pytest.raises(RemoteApiError, match="Script operation 'unknown_op' failed"):
        run_snippet(fake_auth, project_id, "unknown_op", "return 1;")
    assert temp_files(script_service, project_id) == []


def test_temp_file_removed_when_block_raises(fake_auth, script_service, project_id):
    with pytest.raises(KeyError):
        with temporary_script(fake_auth, project_id, "probe", "return 1;"):
            assert len(temp_files(script_service, project_id)) == 1
            raise KeyError("boom")
    assert temp_files(script_service, project_id) == []


def test_failed_cleanup_is_logged_not_raised(fake_auth, script_service, project_id, monkeypatch, caplog):
    from gasmcp.sdk.script import snippets

    real_modify = snippets.modify_files
    calls = []

    def flaky_modify(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise RuntimeError("quota exceeded")
        return real_modify(*args, **kwargs)

    monkeypatch.setattr(snippets, "modify_files", flaky_modify)

    with temporary_script(fake_auth, project_id, "probe", "return 1;"):
        pass

    assert "quota exceeded" in caplog.text
    assert len(temp_files(script_service, project_id)) == 1


def test_orphans_are_swept_on_next_upload(fake_auth, script_service, project_id):
    # Arrange: a leftover from a process that died an hour ago
    orphan_ms = int(time.time() * 1000) - 3_600_000
    orphan = f"{TEMP_PREFIX}set_property_{orphan_ms}_deadbeef"
    script_service.files_of(project_id).append({"name": orphan, "type": "SERVER_JS", "source": ""})

    # Action
    run_snippet(fake_auth, project_id, "get_all_properties", GET_ALL_JS)

    # Assertion
    names = [f["name"] for f in script_service.files_of(project_id)]
    assert orphan not in names
    assert names == ["Code", "appsscript"]


def test_sweep_removes_only_temp_files(fake_auth, script_service, project_id):
    now_ms = int(time.time() * 1000)
    fresh = f"{TEMP_PREFIX}get_property_{now_ms}_0badc0de"
    script_service.files_of(project_id).append({"name": fresh, "type": "SERVER_JS", "source": ""})

    kept = sweep_temp_files(fake_auth, project_id, max_age_seconds=600)
    assert kept["removed"] == []
    assert script_service.update_calls == []

    swept = sweep_temp_files(fake_auth, project_id)
    assert swept["removed"] == [fresh]
    assert [f["name"] for f in script_service.files_of(project_id)] == ["Code", "appsscript"]
