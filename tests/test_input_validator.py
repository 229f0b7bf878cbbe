import pytest

from ballotguard.errors import InvalidRequest
from ballotguard.security.input_validator import (
    CastVoteRequest,
    GenerateLinkRequest,
    InputValidator,
    LoginRequest,
)


@pytest.fixture
def validator():
    return InputValidator()


def test_sanitize_string_strips_markup(validator):
    assert "<script>" not in validator.sanitize_string("<script>alert(1)</script>hello")
    assert validator.sanitize_string("  plain text  ") == "plain text"
    assert len(validator.sanitize_string("a" * 500)) == 255


def test_sanitize_string_rejects_non_strings(validator):
    with pytest.raises(InvalidRequest):
        validator.sanitize_string(123)


@pytest.mark.parametrize("email,valid", [
    ("voter@example.com", True),
    ("first.last+tag@sub.example.org", True),
    ("not-an-email", False),
    ("missing@tld", False),
    (None, False),
])
def test_validate_email(validator, email, valid):
    assert validator.validate_email(email) is valid


def test_parse_login_normalises_email(validator):
    req = validator.parse_login({"email": "Voter@Example.com", "password": "x"})
    assert req == LoginRequest(email="voter@example.com", password="x")


@pytest.mark.parametrize("payload", [
    None,
    [],
    {"email": "voter@example.com"},
    {"email": "bad", "password": "x"},
    {"password": "x"},
])
def test_parse_login_rejects_bad_payloads(validator, payload):
    with pytest.raises(InvalidRequest):
        validator.parse_login(payload)


def test_parse_verify_mfa_requires_six_digits(validator):
    req = validator.parse_verify_mfa({"mfaToken": "ab" * 20, "mfaCode": "012345"})
    assert req.mfa_code == "012345"
    for code in ("12345", "1234567", "abcdef", 123456, None):
        with pytest.raises(InvalidRequest):
            validator.parse_verify_mfa({"mfaToken": "ab" * 20, "mfaCode": code})


def test_parse_reset_password_requires_confirmation(validator):
    assert validator.parse_reset_password(
        {"password": "StrongPass1", "confirmPassword": "StrongPass1"}
    ).password == "StrongPass1"
    with pytest.raises(InvalidRequest):
        validator.parse_reset_password({"password": "StrongPass1", "confirmPassword": "Other1"})


def test_parse_generate_link(validator):
    assert validator.parse_generate_link({"electionId": 4}) == GenerateLinkRequest(election_id=4)
    assert validator.parse_generate_link({"electionId": "4"}) == GenerateLinkRequest(election_id=4)
    for bad in (None, 0, -1, True, "abc", 1.5):
        with pytest.raises(InvalidRequest):
            validator.parse_generate_link({"electionId": bad})


def test_parse_cast_vote(validator):
    assert validator.parse_cast_vote({"candidateId": 2}) == CastVoteRequest(candidate_id=2)
    req = validator.parse_cast_vote({"candidateId": 2, "faceImage": "aW1hZ2U="})
    assert req.face_image == "aW1hZ2U="


def test_parse_cast_vote_rejects_bad_image(validator):
    with pytest.raises(InvalidRequest):
        validator.parse_cast_vote({"candidateId": 2, "faceImage": "not base64!!"})
    with pytest.raises(InvalidRequest):
        validator.parse_cast_vote({"candidateId": 2, "faceImage": 42})


def test_validate_token(validator):
    assert validator.validate_token("ab" * 32) is True
    assert validator.validate_token("xyz") is False
