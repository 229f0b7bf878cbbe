# ballotguard/authentication/accounts.py

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from ballotguard import db
from ballotguard.authentication.mfa import ChallengeGenerator
from ballotguard.database.models import User
from ballotguard.errors import DispatchFailed, InvalidOrExpiredToken, InvalidRequest

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_LIFETIME = timedelta(hours=24)
RESET_TOKEN_LIFETIME = timedelta(minutes=10)


def _digest(token):
    return hashlib.sha256(token.encode()).hexdigest()


class AccountService:
    """Registration, email verification and password reset."""

    def __init__(self, dispatcher, password_service, frontend_url):
        self.dispatcher = dispatcher
        self.password_service = password_service
        self.frontend_url = frontend_url.rstrip('/')

    def _now(self):
        return datetime.utcnow()

    def register(self, email, password):
        token = secrets.token_hex(20)
        user = User(
            email=email,
            password_hash=self.password_service.hash_password(password),
            mfa_secret=ChallengeGenerator.generate_secret(),
            verification_token=_digest(token),
            verification_token_expires=self._now() + VERIFICATION_TOKEN_LIFETIME,
        )
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise InvalidRequest('Email is already registered')

        try:
            self.dispatcher.send(
                user.email,
                'Email Verification - Online Voting System',
                f"Please verify your email by clicking on the following link: "
                f"{self.frontend_url}/verify/{token}",
            )
        except DispatchFailed:
            user.verification_token = None
            user.verification_token_expires = None
            db.session.commit()
            raise
        logger.info(f"Registered user {user.id}")
        return user

    def verify_email(self, token):
        # Conditional UPDATE: only one request can consume the token
        updated = db.session.query(User).filter(
            User.verification_token == _digest(token),
            User.verification_token_expires > self._now(),
        ).update({
            User.is_verified: True,
            User.verification_token: None,
            User.verification_token_expires: None,
        }, synchronize_session=False)
        db.session.commit()
        if updated != 1:
            raise InvalidOrExpiredToken()

    def forgot_password(self, email):
        """Email a reset link. Unknown addresses are accepted silently."""
        user = db.session.query(User).filter_by(email=email).first()
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token = secrets.token_hex(20)
        user.reset_token = _digest(token)
        user.reset_token_expires = self._now() + RESET_TOKEN_LIFETIME
        db.session.commit()
        try:
            self.dispatcher.send(
                user.email,
                'Password Reset Request',
                "You are receiving this email because you (or someone else) requested a "
                f"password reset. Use the following link: {self.frontend_url}/resetpassword/{token}",
            )
        except DispatchFailed:
            user.reset_token = None
            user.reset_token_expires = None
            db.session.commit()
            raise

    def reset_password(self, token, new_password):
        password_hash = self.password_service.hash_password(new_password)
        updated = db.session.query(User).filter(
            User.reset_token == _digest(token),
            User.reset_token_expires > self._now(),
        ).update({
            User.password_hash: password_hash,
            User.reset_token: None,
            User.reset_token_expires: None,
        }, synchronize_session=False)
        db.session.commit()
        if updated != 1:
            raise InvalidOrExpiredToken()
