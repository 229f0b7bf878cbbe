# ballotguard/security/input_validator.py

import base64
import binascii
import html
import re
from dataclasses import dataclass
from typing import Optional

import bleach

from ballotguard.errors import InvalidRequest

# Fixed request schemas; every payload is parsed here before any state changes


@dataclass(frozen=True)
class RegisterRequest:
    email: str
    password: str


@dataclass(frozen=True)
class LoginRequest:
    email: str
    password: str


@dataclass(frozen=True)
class VerifyMfaRequest:
    mfa_token: str
    mfa_code: str


@dataclass(frozen=True)
class ForgotPasswordRequest:
    email: str


@dataclass(frozen=True)
class ResetPasswordRequest:
    password: str


@dataclass(frozen=True)
class GenerateLinkRequest:
    election_id: int


@dataclass(frozen=True)
class CastVoteRequest:
    candidate_id: int
    face_image: Optional[str] = None


class InputValidator:
    MAX_FACE_IMAGE_CHARS = 8 * 1024 * 1024

    def __init__(self):
        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'hex_token': re.compile(r'^[0-9a-f]{32,128}$'),
            'mfa_code': re.compile(r'^\d{6}$'),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'\bon\w+\s*=', re.IGNORECASE),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise InvalidRequest("Input must be a string")
        input_str = input_str[:max_length]
        sanitized = html.escape(input_str)
        sanitized = re.sub(self.patterns['xss_script'], '', sanitized)
        sanitized = re.sub(self.patterns['xss_event'], '', sanitized)
        sanitized = bleach.clean(sanitized, tags=[], attributes={}, strip=True)
        return sanitized.strip()

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def validate_token(self, token):
        return isinstance(token, str) and bool(self.patterns['hex_token'].match(token))

    def _payload(self, payload):
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be a JSON object")
        return payload

    def _email(self, payload):
        email = payload.get('email')
        if not isinstance(email, str) or not email.strip():
            raise InvalidRequest("Email is required")
        email = self.sanitize_string(email).lower()
        if not self.validate_email(email):
            raise InvalidRequest("Please include a valid email")
        return email

    def _password(self, payload, field='password'):
        password = payload.get(field)
        if not isinstance(password, str) or not password:
            raise InvalidRequest("Password is required")
        return password

    def _positive_int(self, payload, field, label):
        value = payload.get(field)
        if isinstance(value, bool):
            value = None
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        if not isinstance(value, int) or value <= 0:
            raise InvalidRequest(f"{label} is required")
        return value

    def parse_register(self, payload):
        payload = self._payload(payload)
        return RegisterRequest(email=self._email(payload), password=self._password(payload))

    def parse_login(self, payload):
        payload = self._payload(payload)
        return LoginRequest(email=self._email(payload), password=self._password(payload))

    def parse_verify_mfa(self, payload):
        payload = self._payload(payload)
        mfa_token, mfa_code = payload.get('mfaToken'), payload.get('mfaCode')
        if not isinstance(mfa_token, str) or not mfa_token:
            raise InvalidRequest("MFA token is required")
        if not isinstance(mfa_code, str) or not self.patterns['mfa_code'].match(mfa_code):
            raise InvalidRequest("MFA code is required")
        return VerifyMfaRequest(mfa_token=mfa_token, mfa_code=mfa_code)

    def parse_forgot_password(self, payload):
        return ForgotPasswordRequest(email=self._email(self._payload(payload)))

    def parse_reset_password(self, payload):
        payload = self._payload(payload)
        password = self._password(payload)
        if payload.get('confirmPassword') != password:
            raise InvalidRequest("Passwords do not match")
        return ResetPasswordRequest(password=password)

    def parse_generate_link(self, payload):
        payload = self._payload(payload)
        return GenerateLinkRequest(election_id=self._positive_int(payload, 'electionId', 'Election ID'))

    def parse_cast_vote(self, payload):
        payload = self._payload(payload)
        candidate_id = self._positive_int(payload, 'candidateId', 'Candidate ID')
        face_image = payload.get('faceImage')
        if face_image in (None, ''):
            return CastVoteRequest(candidate_id=candidate_id)
        if not isinstance(face_image, str) or len(face_image) > self.MAX_FACE_IMAGE_CHARS:
            raise InvalidRequest("Invalid face image")
        try:
            base64.b64decode(face_image, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidRequest("Face image must be base64 encoded")
        return CastVoteRequest(candidate_id=candidate_id, face_image=face_image)
