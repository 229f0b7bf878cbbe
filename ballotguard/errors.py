# ballotguard/errors.py
"""Error taxonomy for the identity-verification and vote-casting core.

Every error a caller can recover from at the request boundary derives from
``VotingError`` and carries the HTTP status and the public message the API
returns. Messages are deliberately coarse: wrong password and unknown email
share one message, as do an expired and an unknown token.

Anything that is not a ``VotingError`` is treated as an internal failure,
logged, and answered with an opaque 500.
"""


class VotingError(Exception):
    """Base class for all recoverable core failures."""
    status_code = 400
    message = 'Request could not be processed'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidRequest(VotingError):
    status_code = 400
    message = 'Invalid request'


class Unauthenticated(VotingError):
    status_code = 401
    message = 'Invalid credentials'


class InvalidOrExpiredToken(VotingError):
    status_code = 401
    message = 'Invalid or expired token'


class InvalidCode(VotingError):
    # Same public message as InvalidOrExpiredToken
    status_code = 401
    message = 'Invalid or expired token'


class InvalidOrExpiredLink(InvalidOrExpiredToken):
    status_code = 400
    message = 'Invalid or expired voting link'


class Unauthorized(VotingError):
    status_code = 401
    message = 'Unauthorized to use this voting link'


class ElectionNotFound(VotingError):
    status_code = 404
    message = 'Election not found'


class ElectionNotActive(VotingError):
    status_code = 400
    message = 'Election is not currently active'


class CandidateNotFound(VotingError):
    status_code = 404
    message = 'Candidate not found in this election'


class AlreadyVoted(VotingError):
    status_code = 400
    message = 'You have already voted in this election'


class StorageConflict(AlreadyVoted):
    """Uniqueness violation reported by the database itself."""


class ProfileNotVerified(VotingError):
    status_code = 403
    message = 'Your profile is not verified'


class FaceVerificationFailed(VotingError):
    status_code = 401
    message = 'Face verification failed'


class TooManyAttempts(VotingError):
    status_code = 429
    message = 'Too many failed attempts, try again later'


class DispatchFailed(VotingError):
    status_code = 500
    message = 'Email could not be sent'


class ServiceUnavailable(VotingError):
    status_code = 503
    message = 'Service temporarily unavailable'


class StoreUnavailable(ServiceUnavailable):
    """The credential store could not be reached."""
