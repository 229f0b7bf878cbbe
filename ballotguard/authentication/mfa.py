# ballotguard/authentication/mfa.py

import hmac
import logging
import secrets
import time

import pyotp

from ballotguard import db
from ballotguard.database.models import User
from ballotguard.errors import (
    DispatchFailed,
    InvalidCode,
    InvalidOrExpiredToken,
    Unauthenticated,
)

logger = logging.getLogger(__name__)

# Email-delivered one-time codes for the second login factor

SESSION_KEY = 'mfa:{}'
CODE_KEY = 'code:{}'
ATTEMPTS_KEY = 'mfa_attempts:{}'


class ChallengeGenerator:
    """TOTP codes: HMAC of the user's secret and floor(now / window)."""

    def __init__(self, window_seconds=300, digits=6):
        self.window_seconds = window_seconds
        self.digits = digits

    def _totp(self, secret, window_seconds=None):
        return pyotp.TOTP(secret, digits=self.digits, interval=window_seconds or self.window_seconds)

    def generate(self, secret, window_seconds=None, for_time=None):
        """Return the code for the window containing ``for_time`` (default now)."""
        return self._totp(secret, window_seconds).at(for_time if for_time is not None else time.time())

    def verify(self, secret, code, for_time=None, window=1):
        """Accept the current step and ``window`` neighbouring steps."""
        return self._totp(secret).verify(code, for_time=for_time, valid_window=window)

    @staticmethod
    def generate_secret():
        return pyotp.random_base32()


class MFASessionManager:
    def __init__(self, store, dispatcher, password_service, token_manager,
                 challenge_ttl=300, max_attempts=5, intrusion_detection=None):
        self.store = store
        self.dispatcher = dispatcher
        self.password_service = password_service
        self.token_manager = token_manager
        # One code window per challenge lifetime, so a code stays valid for its whole TTL
        self.challenge = ChallengeGenerator(window_seconds=challenge_ttl)
        self.challenge_ttl = challenge_ttl
        self.max_attempts = max_attempts
        self.intrusion_detection = intrusion_detection
        # Verified against when the email is unknown so both paths cost one Argon2 check
        self._dummy_hash = password_service.hash_password('Unused-Dummy-Password-1')

    def login(self, email, password, ip_address=None):
        """Check credentials and issue a challenge. Returns the MFA session token."""
        if self.intrusion_detection and ip_address:
            self.intrusion_detection.check(ip_address)

        user = db.session.query(User).filter_by(email=email).first()
        password_ok = self.password_service.verify_password(
            password, user.password_hash if user else self._dummy_hash
        )
        if not user or not password_ok or not user.is_verified:
            if self.intrusion_detection and ip_address:
                self.intrusion_detection.record_failed_attempt(ip_address)
            logger.info("Login rejected")
            raise Unauthenticated()

        if self.intrusion_detection and ip_address:
            self.intrusion_detection.reset(ip_address)
        if self.password_service.needs_rehash(user.password_hash):
            user.password_hash = self.password_service.rehash(password)
            db.session.commit()
            logger.info(f"Password hash upgraded for user {user.id}")

        mfa_token = secrets.token_hex(20)
        code = self.challenge.generate(user.mfa_secret)
        session_key, code_key = SESSION_KEY.format(mfa_token), CODE_KEY.format(user.id)
        self.store.set(session_key, user.id, self.challenge_ttl)
        self.store.set(code_key, code, self.challenge_ttl)

        try:
            self.dispatcher.send(
                user.email,
                'Your MFA Verification Code',
                f"Your MFA verification code is: {code}\n"
                f"It expires in {self.challenge_ttl // 60} minutes.",
            )
        except DispatchFailed:
            self.store.delete(session_key)
            self.store.delete(code_key)
            raise

        logger.info(f"MFA challenge issued for user {user.id}")
        return mfa_token

    def verify(self, mfa_token, code):
        """Consume a challenge exactly once. Returns (user, session credential)."""
        session_key = SESSION_KEY.format(mfa_token)
        user_id = self.store.get(session_key)
        if user_id is None:
            raise InvalidOrExpiredToken()

        code_key = CODE_KEY.format(user_id)
        expected = self.store.get(code_key)
        if expected is None:
            raise InvalidOrExpiredToken()

        if not hmac.compare_digest(str(expected).encode(), str(code).encode()):
            self._record_failure(mfa_token, session_key, code_key)
            raise InvalidCode()

        user = db.session.get(User, user_id)
        if user is None or not self.challenge.verify(user.mfa_secret, code):
            self._record_failure(mfa_token, session_key, code_key)
            raise InvalidCode()

        # A concurrent verify with the same token loses here
        if self.store.take(session_key) is None:
            raise InvalidOrExpiredToken()
        self.store.delete(code_key)
        self.store.delete(ATTEMPTS_KEY.format(mfa_token))

        logger.info(f"MFA verified for user {user.id}")
        return user, self.token_manager.generate_token(str(user.id))

    def _record_failure(self, mfa_token, session_key, code_key):
        attempts = self.store.incr(ATTEMPTS_KEY.format(mfa_token), self.challenge_ttl)
        if attempts >= self.max_attempts:
            logger.warning("MFA challenge invalidated after repeated failures")
            self.store.delete(session_key)
            self.store.delete(code_key)

