# ballotguard/voting/link_issuer.py

import logging
import secrets
from datetime import datetime

from ballotguard import db
from ballotguard.database.models import Election, User, Vote, VoterProfile
from ballotguard.errors import (
    AlreadyVoted,
    DispatchFailed,
    ElectionNotActive,
    ElectionNotFound,
    ProfileNotVerified,
)

logger = logging.getLogger(__name__)

VOTING_TOKEN_KEY = 'vote:{}'


class VotingLinkIssuer:
    def __init__(self, store, dispatcher, audit_logger, token_ttl=120):
        self.store = store
        self.dispatcher = dispatcher
        self.audit_logger = audit_logger
        self.token_ttl = token_ttl

    def _now(self):
        return datetime.utcnow()

    def issue(self, user_id, election_id, context, link_base):
        """Email a single-use voting link; returns the token it embeds."""
        election = db.session.get(Election, election_id)
        if election is None:
            raise ElectionNotFound()
        if not election.is_active(self._now()):
            raise ElectionNotActive()

        # Advisory only, the votes unique constraint is authoritative
        if db.session.query(Vote.id).filter_by(election_id=election_id, voter_id=user_id).first():
            raise AlreadyVoted()

        profile = db.session.query(VoterProfile).filter_by(user_id=user_id).first()
        if profile is None or not profile.is_verified:
            raise ProfileNotVerified()

        user = db.session.get(User, user_id)
        token = secrets.token_hex(32)
        key = VOTING_TOKEN_KEY.format(token)
        self.store.set(key, {"userId": user_id, "electionId": election_id}, self.token_ttl)

        try:
            self.dispatcher.send(
                user.email,
                'Your Voting Link - Online Voting System',
                "Please use the following link to cast your vote. "
                f"This link will expire in {self.token_ttl // 60} minutes: {link_base.rstrip('/')}/{token}",
            )
        except DispatchFailed:
            # The voter never saw the link, so it must not stay redeemable
            self.store.delete(key)
            raise

        self.audit_logger.record(
            'Voting link generated', user_id, context, {'electionId': election_id}
        )
        logger.info(f"Voting link issued to user {user_id} for election {election_id}")
        return token
