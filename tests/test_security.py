"""Tests for password hashing and access tokens."""

import uuid

import jwt
import pytest

from carehub.config import settings
from carehub.errors import AuthenticationError, BusinessRuleError
from carehub.models.accounts import User
from carehub.services.security import (
    check_password_strength,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def _user():
    return User(id=uuid.uuid4(), role="DOCTOR", organization_id=None)


def test_password_hash_verifies():
    hashed = hash_password("Str0ngPassw0rd")
    assert hashed != "Str0ngPassw0rd"
    assert verify_password("Str0ngPassw0rd", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_against_garbage_hash_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


@pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
def test_weak_passwords_rejected(password):
    with pytest.raises(BusinessRuleError):
        check_password_strength(password)


def test_token_roundtrip_carries_role():
    user = _user()
    payload = decode_access_token(create_access_token(user))
    assert payload["sub"] == str(user.id)
    assert payload["role"] == "DOCTOR"
    assert payload["org"] is None


def test_expired_token_rejected():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "exp": 0}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM
    )
    with pytest.raises(AuthenticationError, match="expired"):
        decode_access_token(token)


def test_tampered_token_rejected():
    token = jwt.encode({"sub": "x"}, "some-other-secret", algorithm="HS256")
    with pytest.raises(AuthenticationError, match="Invalid token"):
        decode_access_token(token)
