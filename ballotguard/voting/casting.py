# ballotguard/voting/casting.py
"""Vote casting: redeem a voting token and record exactly one vote.

Checks run in a fixed order and the first failure wins:

1. the token is taken (read and deleted atomically) from the credential store
2. it must belong to the calling user
3. the election must exist and be open
4. the candidate must stand in that election
5. the voter must not have voted yet (advisory)
6. optional face match against the profile's reference image
7. insert; the (election, voter) unique constraint decides concurrent races
8. attestation reference attached
9. "Vote cast" audit entry

Because the token is consumed in step 1, it is gone after every outcome,
successful or not, and cannot be replayed.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ballotguard import db
from ballotguard.database.models import Election, Vote, VoterProfile
from ballotguard.errors import (
    AlreadyVoted,
    CandidateNotFound,
    ElectionNotActive,
    ElectionNotFound,
    FaceVerificationFailed,
    InvalidOrExpiredLink,
    StorageConflict,
    Unauthorized,
)
from ballotguard.voting.attestation import AttestationError
from ballotguard.voting.link_issuer import VOTING_TOKEN_KEY

logger = logging.getLogger(__name__)


class VoteCastingEngine:
    def __init__(self, store, audit_logger, face_oracle, ledger, geolocator=None,
                 similarity_threshold=90.0, face_verification_required=False):
        self.store = store
        self.audit_logger = audit_logger
        self.face_oracle = face_oracle
        self.ledger = ledger
        self.geolocator = geolocator
        self.similarity_threshold = similarity_threshold
        self.face_verification_required = face_verification_required

    def _now(self):
        return datetime.utcnow()

    def cast_vote(self, token, caller_user_id, candidate_id, face_image=None, context=None):
        resolved = self.store.take(VOTING_TOKEN_KEY.format(token))
        if resolved is None:
            raise InvalidOrExpiredLink()
        try:
            user_id, election_id = resolved["userId"], resolved["electionId"]
        except (KeyError, TypeError):
            raise RuntimeError("Voting token entry is missing userId/electionId")

        if user_id != caller_user_id:
            logger.warning(f"User {caller_user_id} presented a voting token issued to another user")
            raise Unauthorized()

        election = db.session.get(Election, election_id)
        if election is None:
            raise ElectionNotFound()
        if not election.is_active(self._now()):
            raise ElectionNotActive()
        if not election.has_candidate(candidate_id):
            raise CandidateNotFound()

        if self._has_voted(election_id, user_id):
            raise AlreadyVoted()

        facial_verification = self._verify_face(user_id, face_image)

        vote = Vote(
            election_id=election_id,
            voter_id=user_id,
            candidate_id=candidate_id,
            timestamp=self._now(),
            location=self._locate(context),
            facial_verification=facial_verification,
        )
        try:
            db.session.add(vote)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            # Only a committed vote for the same (election, voter) is a double vote
            if not self._vote_exists(election_id, user_id):
                raise
            logger.info(f"Concurrent vote rejected by uniqueness constraint (election {election_id})")
            raise StorageConflict()

        self._attest(vote)

        self.audit_logger.record(
            'Vote cast', user_id, context,
            {'electionId': election_id, 'candidateId': candidate_id},
        )
        return vote.to_receipt()

    def _vote_exists(self, election_id, user_id):
        return db.session.query(Vote.id).filter_by(
            election_id=election_id, voter_id=user_id
        ).first() is not None

    def _has_voted(self, election_id, user_id):
        # Advisory early exit; the unique constraint is authoritative
        return self._vote_exists(election_id, user_id)

    def _verify_face(self, user_id, face_image):
        profile = db.session.query(VoterProfile).filter_by(user_id=user_id).first()
        reference = profile.face_data if profile else None
        if not face_image or not reference:
            if self.face_verification_required:
                raise FaceVerificationFailed()
            return None

        result = self.face_oracle.compare(reference, face_image)
        score = float(result.get("similarity_score") or 0.0)
        verified = bool(result.get("is_verified")) and score >= self.similarity_threshold
        if not verified:
            logger.info(f"Face verification failed for user {user_id} (score {score})")
            raise FaceVerificationFailed()
        return {
            "isVerified": True,
            "similarityScore": score,
            "verificationTime": self._now().isoformat(),
        }

    def _locate(self, context):
        ip_address = context.ip_address if context else None
        if self.geolocator is None:
            return {"ip": ip_address}
        return self.geolocator.locate(ip_address)

    def _attest(self, vote):
        summary = {
            "vote_id": vote.id,
            "election_id": vote.election_id,
            "cast_at": vote.timestamp.isoformat(),
        }
        try:
            vote.attestation_ref = self.ledger.record(summary)
        except AttestationError as e:
            # Vote stands; attach_pending_attestations() fills the reference in later
            logger.error(f"Attestation failed for vote {vote.id}: {e}")
            return
        db.session.commit()

    def attach_pending_attestations(self):
        """Attest every stored vote that has no reference yet. Returns how many were attached."""
        attached = 0
        pending = db.session.query(Vote).filter(Vote.attestation_ref.is_(None)).order_by(Vote.id).all()
        for vote in pending:
            self._attest(vote)
            if vote.attestation_ref:
                attached += 1
        return attached
