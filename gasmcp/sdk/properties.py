"""Script properties with optional encryption, audit, backup and restore.

Apps Script has no REST endpoint for PropertiesService, so every call here
runs a small snippet inside the target project (see script/snippets.py).
Encrypted values are stored as a JSON envelope:

    {"_encrypted": true, "data": {"encrypted", "iv", "authTag"}, "timestamp"}

Anything else, including JSON without the sentinel, is plaintext and is
returned unchanged.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from .crypto import EncryptionHelper, create_hash, is_envelope
from .exceptions import CryptoError, IntegrityError, ValidationError
from .script.snippets import run_snippet, sweep_temp_files
from .validators import validate_script_id

logger = logging.getLogger(__name__)

SENSITIVE_KEYWORDS = (
    "api_key", "apikey", "secret", "password", "token", "auth",
    "credential", "private", "key", "pass", "pwd",
)

SET_PROPERTY_JS = """
PropertiesService.getScriptProperties().setProperty(args.key, args.value);
return true;
"""

GET_PROPERTY_JS = """
return PropertiesService.getScriptProperties().getProperty(args.key);
"""

DELETE_PROPERTY_JS = """
PropertiesService.getScriptProperties().deleteProperty(args.key);
return true;
"""

GET_ALL_PROPERTIES_JS = """
return PropertiesService.getScriptProperties().getProperties();
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def checksum_of(properties: dict) -> str:
    """SHA-256 of the compact JSON form of a property mapping."""
    return create_hash(json.dumps(properties, separators=(",", ":"), ensure_ascii=False))


def parse_envelope(raw: Optional[str]) -> Optional[dict]:
    """Return the envelope dict if `raw` is an encrypted value, else None."""
    if not isinstance(raw, str):
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if is_envelope(parsed) else None


class PropertiesManager:
    """Reads and writes one project's script properties."""

    def __init__(self, auth, cipher: EncryptionHelper):
        self.auth = auth
        self.cipher = cipher

    def _unwrap(self, raw: Optional[str]) -> Optional[str]:
        envelope = parse_envelope(raw)
        if envelope is None:
            return raw
        if not isinstance(envelope.get("data"), dict):
            raise CryptoError("Encrypted property has no data section")
        return self.cipher.decrypt(envelope["data"])

    def set_secure_property(self, script_id: str, key: str, value: str, encrypt: bool = True) -> dict:
        """
        Store a property, wrapped in an encrypted envelope unless encrypt=False.

        With encrypt=False the stored value is exactly `value`.
        """
        validate_script_id(script_id)
        if not key:
            raise ValidationError("Property key cannot be empty")
        if not isinstance(value, str):
            raise ValidationError(f"Property '{key}' value must be a string")

        stored = json.dumps(self.cipher.seal(value)) if encrypt else value
        run_snippet(self.auth, script_id, "set_property", SET_PROPERTY_JS, {"key": key, "value": stored})
        logger.info(f"Set property '{key}' on {script_id} (encrypted={encrypt})")
        return {"key": key, "encrypted": encrypt, "timestamp": _now()}

    def get_secure_property(self, script_id: str, key: str, decrypt: bool = True) -> Optional[str]:
        """Fetch one property; None if it does not exist."""
        validate_script_id(script_id)
        raw = run_snippet(self.auth, script_id, "get_property", GET_PROPERTY_JS, {"key": key})
        if raw is None or not decrypt:
            return raw
        return self._unwrap(raw)

    def delete_property(self, script_id: str, key: str) -> dict:
        validate_script_id(script_id)
        run_snippet(self.auth, script_id, "delete_property", DELETE_PROPERTY_JS, {"key": key})
        logger.info(f"Deleted property '{key}' from {script_id}")
        return {"deleted": key, "timestamp": _now()}

    def get_all_properties(self, script_id: str, decrypt: bool = True) -> dict:
        validate_script_id(script_id)
        raw = run_snippet(self.auth, script_id, "get_all_properties", GET_ALL_PROPERTIES_JS) or {}
        if not decrypt:
            return dict(raw)
        return {key: self._unwrap(value) for key, value in raw.items()}

    def audit_properties(self, script_id: str) -> dict:
        """
        Classify properties as encrypted or plaintext and flag plaintext keys
        whose names look sensitive.

        This is a keyword heuristic for advice only; an empty suspiciousKeys
        list does not mean nothing secret is stored in the clear.
        """
        properties = self.get_all_properties(script_id, decrypt=False)
        audit = {
            "totalProperties": len(properties),
            "encryptedProperties": 0,
            "plaintextProperties": 0,
            "suspiciousKeys": [],
            "recommendations": [],
        }

        for key, value in properties.items():
            if parse_envelope(value) is not None:
                audit["encryptedProperties"] += 1
                continue
            audit["plaintextProperties"] += 1
            key_lower = key.lower()
            if any(keyword in key_lower for keyword in SENSITIVE_KEYWORDS):
                audit["suspiciousKeys"].append(key)

        if audit["suspiciousKeys"]:
            audit["recommendations"].append(
                f"Encrypt {len(audit['suspiciousKeys'])} property(ies) that look sensitive: "
                f"{', '.join(audit['suspiciousKeys'])}"
            )
        if audit["plaintextProperties"] > audit["encryptedProperties"]:
            audit["recommendations"].append(
                "More plaintext than encrypted properties; review what is stored unencrypted."
            )
        if audit["totalProperties"] == 0:
            audit["recommendations"].append("No script properties are set.")

        logger.info(
            f"Audited {script_id}: {audit['encryptedProperties']} encrypted, "
            f"{audit['plaintextProperties']} plaintext, {len(audit['suspiciousKeys'])} suspicious"
        )
        return audit

    def backup_properties(self, script_id: str, include_encrypted: bool = False) -> dict:
        """
        Snapshot all properties.

        include_encrypted=False decrypts values into the snapshot and records
        which keys were encrypted so restore can re-encrypt only those.
        include_encrypted=True keeps the raw envelopes, which can only be
        restored under the same key (see keyFingerprint).
        """
        raw = self.get_all_properties(script_id, decrypt=False)
        if include_encrypted:
            properties = raw
            encrypted_keys = [k for k, v in raw.items() if parse_envelope(v) is not None]
        else:
            properties = {}
            encrypted_keys = []
            for key, value in raw.items():
                if parse_envelope(value) is not None:
                    encrypted_keys.append(key)
                properties[key] = self._unwrap(value)

        backup = {
            "timestamp": _now(),
            "scriptId": script_id,
            "propertyCount": len(properties),
            "includeEncrypted": include_encrypted,
            "properties": properties,
            "encryptedKeys": encrypted_keys,
            "checksum": checksum_of(properties),
            "keyFingerprint": self.cipher.fingerprint,
        }
        logger.info(f"Backed up {len(properties)} properties from {script_id}")
        return backup

    def restore_properties(self, script_id: str, backup: dict, verify_checksum: bool = True) -> dict:
        """
        Write every property of a backup back to a project.

        All checks run before the first write: a checksum mismatch raises
        IntegrityError and a raw-envelope backup taken under a different key
        raises CryptoError. To move encrypted values to a new key, take a
        decrypted backup (include_encrypted=False) with the old key and
        restore it with the new one.
        """
        validate_script_id(script_id)
        if not isinstance(backup, dict) or not isinstance(backup.get("properties"), dict):
            raise ValidationError("Backup must be an object with a 'properties' mapping")

        properties = backup["properties"]
        bad_keys = [k for k, v in properties.items() if not k or not isinstance(v, str)]
        if bad_keys:
            raise ValidationError(f"Backup has invalid entries: {', '.join(map(repr, bad_keys))}")
        if verify_checksum:
            actual = checksum_of(properties)
            if actual != backup.get("checksum"):
                raise IntegrityError(
                    f"Backup checksum mismatch (expected {backup.get('checksum')}, got {actual}); "
                    "nothing was restored"
                )

        include_encrypted = bool(backup.get("includeEncrypted"))
        if include_encrypted:
            fingerprint = backup.get("keyFingerprint")
            if fingerprint and fingerprint != self.cipher.fingerprint:
                raise CryptoError(
                    "Backup holds values encrypted with a different key "
                    f"(fingerprint {fingerprint}, current {self.cipher.fingerprint}). "
                    "Restore with the original ENCRYPTION_KEY or use a decrypted backup."
                )

        if include_encrypted:
            to_encrypt = set()
        elif "encryptedKeys" in backup:
            to_encrypt = set(backup["encryptedKeys"])
        else:
            to_encrypt = set(properties)

        restored = 0
        for key, value in properties.items():
            self.set_secure_property(script_id, key, value, encrypt=key in to_encrypt)
            restored += 1

        logger.info(f"Restored {restored} properties to {script_id}")
        return {"restored": restored, "timestamp": _now()}

    def sweep_temp_files(self, script_id: str, max_age_seconds: int = 0) -> dict:
        return sweep_temp_files(self.auth, script_id, max_age_seconds)
