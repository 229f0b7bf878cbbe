# ballotguard/security/intrusion_detection.py

import logging

from ballotguard.errors import TooManyAttempts

logger = logging.getLogger(__name__)

# Failed-login tracking per IP: progressive delay, then a short lockout.
# State lives in the credential store so it expires on its own and is shared
# by every worker.

FAILURES_KEY = 'login_failures:{}'
DELAY_KEY = 'login_delay:{}'
LOCK_KEY = 'login_lock:{}'


class IntrusionDetection:
    def __init__(self, store, max_attempts=5, window_minutes=15, lockout_minutes=5,
                 base_delay_seconds=1, max_delay_seconds=60):
        """
        max_attempts: failures within `window_minutes` that trigger a lockout
        lockout_minutes: lockout duration once max_attempts is reached
        base_delay_seconds / max_delay_seconds: bounds of the exponential backoff
        """
        self.store = store
        self.max_attempts = max_attempts
        self.window_seconds = window_minutes * 60
        self.lockout_seconds = lockout_minutes * 60
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds

    def record_failed_attempt(self, ip):
        """Record a failure for `ip` and return the seconds it must wait."""
        if self.is_ip_blocked(ip):
            return self.lockout_seconds

        attempts = self.store.incr(FAILURES_KEY.format(ip), self.window_seconds)
        if attempts >= self.max_attempts:
            self.store.set(LOCK_KEY.format(ip), attempts, self.lockout_seconds)
            self.store.delete(FAILURES_KEY.format(ip))
            self.store.delete(DELAY_KEY.format(ip))
            logger.warning(f"Login lockout for {ip} after {attempts} failures")
            return self.lockout_seconds

        delay = min(self.base_delay_seconds * (2 ** (attempts - 1)), self.max_delay_seconds)
        self.store.set(DELAY_KEY.format(ip), attempts, delay)
        return delay

    def is_ip_blocked(self, ip):
        return self.store.get(LOCK_KEY.format(ip)) is not None

    def is_ip_throttled(self, ip):
        return self.store.get(DELAY_KEY.format(ip)) is not None

    def check(self, ip):
        """Raise TooManyAttempts while `ip` is locked out or inside its backoff delay."""
        if self.is_ip_blocked(ip):
            raise TooManyAttempts()
        if self.is_ip_throttled(ip):
            logger.info(f"Login attempt from {ip} inside backoff delay")
            raise TooManyAttempts()

    def reset(self, ip):
        for key in (FAILURES_KEY, DELAY_KEY, LOCK_KEY):
            self.store.delete(key.format(ip))
