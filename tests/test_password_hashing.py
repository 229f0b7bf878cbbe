import pytest

from ballotguard.encryption.password_hashing import PasswordHashingService
from ballotguard.errors import InvalidRequest


@pytest.fixture
def password_service():
    return PasswordHashingService()


def test_hash_and_verify_password(password_service):
    password = "StrongPass123"
    hashed = password_service.hash_password(password)

    assert hashed.startswith("$argon2id$")
    assert password_service.verify_password(password, hashed) is True
    assert password_service.verify_password("WrongPass456", hashed) is False
    assert password_service.needs_rehash(hashed) is False


def test_verify_against_garbage_hash(password_service):
    assert password_service.verify_password("StrongPass123", "not-a-hash") is False


@pytest.mark.parametrize("password,expected", [
    ("StrongPass1", True),
    ("Abcdefg1", True),
    ("Short1A", False),           # too short
    ("alllowercase1", False),     # no uppercase
    ("NoDigitsHere", False),      # no digit
    (None, False),
])
def test_is_strong_password(password_service, password, expected):
    assert password_service.is_strong_password(password) is expected


def test_weak_password_rejected(password_service):
    with pytest.raises(InvalidRequest):
        password_service.hash_password("weak")
