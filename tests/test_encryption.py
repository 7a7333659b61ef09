"""Tests for the PHI encryption service."""

from cryptography.fernet import Fernet

from carehub.services.encryption import EncryptionService


def test_encrypt_decrypt_roundtrip():
    svc = EncryptionService()
    original = "1985-03-22"
    encrypted = svc.encrypt(original)

    assert encrypted != original  # not stored in plaintext
    assert svc.decrypt(encrypted) == original


def test_empty_string_passthrough():
    svc = EncryptionService()
    assert svc.encrypt("") == ""
    assert svc.decrypt("") == ""


def test_json_payloads():
    svc = EncryptionService()
    encrypted = svc.encrypt_json({"ssn": "123-45-6789", "reason": "lookup"})
    assert "123-45-6789" not in encrypted
    assert svc.decrypt_json(encrypted) == {"ssn": "123-45-6789", "reason": "lookup"}
    assert svc.encrypt_json(None) == ""
    assert svc.decrypt_json("") == {}


def test_try_decrypt_with_rotated_key_returns_none():
    old = EncryptionService(Fernet.generate_key().decode())
    new = EncryptionService(Fernet.generate_key().decode())
    assert new.try_decrypt(old.encrypt("123-45-6789")) is None
    assert new.try_decrypt(None) is None
