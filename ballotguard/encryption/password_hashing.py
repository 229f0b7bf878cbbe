# ballotguard/encryption/password_hashing.py

import re

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError

from ballotguard.errors import InvalidRequest

# Argon2id password hashing and the account password policy


class PasswordHashingService:
    MIN_LENGTH = 8

    def __init__(self, time_cost=3, memory_cost=65536, parallelism=4):
        self.ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    def hash_password(self, password: str) -> str:
        if not self.is_strong_password(password):
            raise InvalidRequest(
                f"Password must be at least {self.MIN_LENGTH} characters "
                "and contain an uppercase letter and a number"
            )
        try:
            return self.ph.hash(password)
        except HashingError as e:
            raise RuntimeError(f"Password hashing failed: {e}") from e

    def verify_password(self, password: str, hash_value: str) -> bool:
        try:
            return self.ph.verify(hash_value, password)
        except (VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, hash_value: str) -> bool:
        return self.ph.check_needs_rehash(hash_value)

    def rehash(self, password: str) -> str:
        # Upgrade an already accepted password to current parameters; no policy check
        return self.ph.hash(password)

    def is_strong_password(self, password) -> bool:
        if not isinstance(password, str) or len(password) < self.MIN_LENGTH:
            return False
        return bool(re.search(r'[A-Z]', password)) and bool(re.search(r'\d', password))
