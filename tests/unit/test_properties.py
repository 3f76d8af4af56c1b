"""Tests for script properties: encryption, audit, backup and restore."""

import json
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from gasmcp.sdk.crypto import EncryptionHelper
from gasmcp.sdk.exceptions import CryptoError, IntegrityError, RemoteApiError, ValidationError
from gasmcp.sdk.properties import PropertiesManager, checksum_of, parse_envelope
from gasmcp.sdk.script.snippets import TEMP_PREFIX


def temp_files_left(script_service, script_id):
    return [f["name"] for f in script_service.files_of(script_id) if f["name"].startswith(TEMP_PREFIX)]


def test_encrypted_round_trip(properties_manager, script_service, project_id):
    # Action
    result = properties_manager.set_secure_property(project_id, "API_KEY", "sk-123")

    # Assertion
    stored = script_service.properties[project_id]["API_KEY"]
    assert "sk-123" not in stored
    assert parse_envelope(stored) is not None
    assert result["encrypted"] is True
    assert properties_manager.get_secure_property(project_id, "API_KEY") == "sk-123"
    assert temp_files_left(script_service, project_id) == []


def test_plain_value_stored_verbatim(properties_manager, script_service, project_id):
    properties_manager.set_secure_property(project_id, "MODE", "prod", encrypt=False)
    assert script_service.properties[project_id]["MODE"] == "prod"
    assert properties_manager.get_secure_property(project_id, "MODE") == "prod"


def test_plain_json_without_sentinel_is_untouched(properties_manager, project_id):
    raw = json.dumps({"data": {"encrypted": "00"}})
    properties_manager.set_secure_property(project_id, "CFG", raw, encrypt=False)
    assert properties_manager.get_secure_property(project_id, "CFG") == raw


def test_missing_property_is_none(properties_manager, project_id):
    assert properties_manager.get_secure_property(project_id, "NOPE") is None


def test_value_survives_restart_with_same_key(main_key, fake_auth, properties_manager, project_id):
    properties_manager.set_secure_property(project_id, "TOKEN", "abc")
    restarted = PropertiesManager(fake_auth, EncryptionHelper(main_key))
    assert restarted.get_secure_property(project_id, "TOKEN") == "abc"


def test_restart_with_other_key_raises_crypto_error(other_key, fake_auth, properties_manager, project_id):
    properties_manager.set_secure_property(project_id, "TOKEN", "abc")
    restarted = PropertiesManager(fake_auth, EncryptionHelper(other_key))
    with pytest.raises(CryptoError):
        restarted.get_secure_property(project_id, "TOKEN")


def test_set_rejects_bad_input(properties_manager, project_id):
    with pytest.raises(ValidationError):
        properties_manager.set_secure_property(project_id, "", "v")
    with pytest.raises(ValidationError):
        properties_manager.set_secure_property(project_id, "K", 5)


def test_delete_and_list(properties_manager, script_service, project_id):
    properties_manager.set_secure_property(project_id, "A", "1")
    properties_manager.set_secure_property(project_id, "B", "2", encrypt=False)

    assert properties_manager.get_all_properties(project_id) == {"A": "1", "B": "2"}

    result = properties_manager.delete_property(project_id, "A")
    assert result["deleted"] == "A"
    assert set(script_service.properties[project_id]) == {"B"}


def test_audit_flags_plaintext_sensitive_keys(properties_manager, project_id):
    properties_manager.set_secure_property(project_id, "DB_PASSWORD", "hunter2", encrypt=False)
    properties_manager.set_secure_property(project_id, "API_TOKEN", "t", encrypt=True)
    properties_manager.set_secure_property(project_id, "REGION", "eu", encrypt=False)

    audit = properties_manager.audit_properties(project_id)

    assert audit["totalProperties"] == 3
    assert audit["encryptedProperties"] == 1
    assert audit["plaintextProperties"] == 2
    assert audit["suspiciousKeys"] == ["DB_PASSWORD"]
    assert any("DB_PASSWORD" in r for r in audit["recommendations"])


def test_audit_empty_project(properties_manager, project_id):
    audit = properties_manager.audit_properties(project_id)
    assert audit["totalProperties"] == 0
    assert audit["recommendations"] == ["No script properties are set."]


def test_decrypted_backup_restores_encryption_per_key(properties_manager, script_service, project_id):
    # Arrange
    properties_manager.set_secure_property(project_id, "SECRET", "s")
    properties_manager.set_secure_property(project_id, "PLAIN", "p", encrypt=False)
    backup = properties_manager.backup_properties(project_id)
    script_service.properties[project_id] = {}

    # Action
    result = properties_manager.restore_properties(project_id, backup)

    # Assertion
    assert backup["properties"] == {"SECRET": "s", "PLAIN": "p"}
    assert backup["encryptedKeys"] == ["SECRET"]
    assert backup["checksum"] == checksum_of(backup["properties"])
    assert result["restored"] == 2
    stored = script_service.properties[project_id]
    assert parse_envelope(stored["SECRET"]) is not None
    assert stored["PLAIN"] == "p"


def test_decrypted_backup_moves_to_new_key(other_key, fake_auth, properties_manager, script_service, project_id):
    properties_manager.set_secure_property(project_id, "SECRET", "s")
    backup = properties_manager.backup_properties(project_id)

    rotated = PropertiesManager(fake_auth, EncryptionHelper(other_key))
    rotated.restore_properties(project_id, backup)

    assert rotated.get_secure_property(project_id, "SECRET") == "s"


def test_raw_backup_restores_envelopes_verbatim(properties_manager, script_service, project_id):
    properties_manager.set_secure_property(project_id, "SECRET", "s")
    before = script_service.properties[project_id]["SECRET"]
    backup = properties_manager.backup_properties(project_id, include_encrypted=True)
    script_service.properties[project_id] = {}

    properties_manager.restore_properties(project_id, backup)

    assert script_service.properties[project_id]["SECRET"] == before


def test_raw_backup_under_other_key_is_refused(other_key, fake_auth, properties_manager, script_service, project_id):
    properties_manager.set_secure_property(project_id, "SECRET", "s")
    backup = properties_manager.backup_properties(project_id, include_encrypted=True)
    runs_before = len(script_service.run_calls)

    other = PropertiesManager(fake_auth, EncryptionHelper(other_key))
    with pytest.raises(CryptoError, match="different key"):
        other.restore_properties(project_id, backup)
    assert len(script_service.run_calls) == runs_before


def test_tampered_backup_writes_nothing(properties_manager, script_service, project_id):
    # Arrange
    properties_manager.set_secure_property(project_id, "A", "1", encrypt=False)
    backup = properties_manager.backup_properties(project_id)
    backup["properties"]["A"] = "2"
    runs_before = len(script_service.run_calls)
    updates_before = len(script_service.update_calls)

    # Action / Assertion
    with pytest.raises(IntegrityError):
        properties_manager.restore_properties(project_id, backup)
    assert len(script_service.run_calls) == runs_before
    assert len(script_service.update_calls) == updates_before
    assert script_service.properties[project_id] == {"A": "1"}


def test_checksum_can_be_skipped(properties_manager, script_service, project_id):
    backup = {"properties": {"A": "x"}, "checksum": "bogus", "encryptedKeys": []}
    properties_manager.restore_properties(project_id, backup, verify_checksum=False)
    assert script_service.properties[project_id] == {"A": "x"}


def test_legacy_backup_encrypts_everything(properties_manager, script_service, project_id):
    properties = {"A": "x"}
    backup = {"properties": properties, "checksum": checksum_of(properties)}
    properties_manager.restore_properties(project_id, backup)
    assert parse_envelope(script_service.properties[project_id]["A"]) is not None


def test_restore_rejects_malformed_backup(properties_manager, project_id):
    with pytest.raises(ValidationError):
        properties_manager.restore_properties(project_id, {"nope": 1})


def test_restore_rejects_non_string_values_before_writing(properties_manager, script_service, project_id):
    properties = {"A": "x", "B": 5}
    backup = {"properties": properties, "checksum": checksum_of(properties), "encryptedKeys": []}

    with pytest.raises(ValidationError, match="'B'"):
        properties_manager.restore_properties(project_id, backup)
    assert script_service.run_calls == []


def not_found(script_id, call_number):
    raise HttpError(
        MagicMock(status=404, reason="Not Found"),
        json.dumps({"error": {"message": "Requested entity was not found."}}).encode(),
    )


def test_api_failure_during_upload_is_remote_api_error(properties_manager, script_service, project_id):
    # Arrange
    script_service.get_content_hook = not_found

    # Action / Assertion
    with pytest.raises(RemoteApiError, match="Requested entity was not found"):
        properties_manager.set_secure_property(project_id, "K", "v")
    assert script_service.update_calls == []
    assert script_service.run_calls == []


def test_api_failure_during_sweep_is_remote_api_error(properties_manager, script_service, project_id):
    script_service.get_content_hook = not_found

    with pytest.raises(RemoteApiError, match="Sweep temp files failed"):
        properties_manager.sweep_temp_files(project_id)
