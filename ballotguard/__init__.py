# ballotguard/__init__.py

import logging

from flask import Flask
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from werkzeug.middleware.proxy_fix import ProxyFix

db = SQLAlchemy()  # Database ORM
migrate = Migrate()  # DB migrations
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address, default_limits=["1000/hour"])


class Services:
    """Core services wired with their collaborators, one set per app."""

    def __init__(self, app, store=None, dispatcher=None, face_oracle=None, ledger=None):
        from ballotguard.audit.audit_logger import AuditLogger
        from ballotguard.authentication.accounts import AccountService
        from ballotguard.authentication.mfa import MFASessionManager
        from ballotguard.encryption.password_hashing import PasswordHashingService
        from ballotguard.notifications.email_dispatcher import create_dispatcher
        from ballotguard.security.credential_store import create_credential_store
        from ballotguard.security.geolocation import GeoLocator
        from ballotguard.security.input_validator import InputValidator
        from ballotguard.security.intrusion_detection import IntrusionDetection
        from ballotguard.security.token_manager import TokenManager
        from ballotguard.voting.attestation import SignedHashLedger
        from ballotguard.voting.casting import VoteCastingEngine
        from ballotguard.voting.face_verification import HttpFaceOracle, UnconfiguredFaceOracle
        from ballotguard.voting.link_issuer import VotingLinkIssuer

        config = app.config
        self.store = store or create_credential_store(config['CREDENTIAL_STORE_URL'])
        self.dispatcher = dispatcher or create_dispatcher(config)
        if face_oracle is None:
            face_oracle = (HttpFaceOracle(config['FACE_ORACLE_URL'], config['FACE_ORACLE_TIMEOUT'])
                           if config.get('FACE_ORACLE_URL') else UnconfiguredFaceOracle())
        self.face_oracle = face_oracle
        self.ledger = ledger or SignedHashLedger(
            config['ATTESTATION_LEDGER_PATH'], config.get('ATTESTATION_SIGNING_KEY')
        )

        self.validator = InputValidator()
        self.password_service = PasswordHashingService()
        self.token_manager = TokenManager(app)
        self.audit_logger = AuditLogger()
        self.intrusion_detection = IntrusionDetection(self.store)
        self.accounts = AccountService(self.dispatcher, self.password_service, config['FRONTEND_URL'])
        self.mfa = MFASessionManager(
            self.store, self.dispatcher, self.password_service, self.token_manager,
            challenge_ttl=config['MFA_CHALLENGE_TTL_SECONDS'],
            max_attempts=config['MFA_MAX_ATTEMPTS'],
            intrusion_detection=self.intrusion_detection,
        )
        self.link_issuer = VotingLinkIssuer(
            self.store, self.dispatcher, self.audit_logger,
            token_ttl=config['VOTING_TOKEN_TTL_SECONDS'],
        )
        self.casting = VoteCastingEngine(
            self.store, self.audit_logger, self.face_oracle, self.ledger,
            geolocator=GeoLocator(config.get('GEOIP_URL')),
            similarity_threshold=config['FACE_SIMILARITY_THRESHOLD'],
            face_verification_required=config['FACE_VERIFICATION_REQUIRED'],
        )


def create_app(overrides=None, **collaborators):
    """Build the Flask app. `collaborators` may replace store, dispatcher, face_oracle or ledger."""
    from ballotguard.config import Config

    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if not app.debug and not app.testing:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # Fix proxy headers for HTTPS
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Ensure model modules are imported so SQLAlchemy metadata is populated
    from ballotguard.database import models  # noqa: F401

    app.extensions['ballotguard'] = Services(app, **collaborators)

    from ballotguard.routes import api
    app.register_blueprint(api)

    from ballotguard.cli import register_commands
    register_commands(app)

    return app
