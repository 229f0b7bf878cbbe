# ballotguard/security/token_manager.py
from datetime import timedelta

from flask import Flask
from flask_jwt_extended import create_access_token, get_jwt_identity


# Long-lived session credential handed out once MFA succeeds
class TokenManager:
    def __init__(self, app: Flask = None):
        if app:
            self.init_app(app)

    def init_app(self, app: Flask):
        app.config.setdefault("JWT_SECRET_KEY", "change_this_secret_key")
        app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(hours=24))

    def generate_token(self, user_id: str, expires_in: int = None) -> str:
        expires_delta = timedelta(seconds=expires_in) if expires_in else None
        return create_access_token(identity=str(user_id), expires_delta=expires_delta)

    def get_identity(self):
        # Current user id from the JWT in the request context, as int.
        identity = get_jwt_identity()
        return int(identity) if identity is not None else None
