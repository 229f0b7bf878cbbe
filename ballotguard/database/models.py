# ballotguard/database/models.py

from datetime import datetime

from ballotguard import db


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # Argon2id
    mfa_secret = db.Column(db.String(64), nullable=False)  # base32 TOTP secret
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    # SHA-256 digests of the emailed tokens, never the tokens themselves
    verification_token = db.Column(db.String(64), index=True)
    verification_token_expires = db.Column(db.DateTime)
    reset_token = db.Column(db.String(64), index=True)
    reset_token_expires = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    profile = db.relationship('VoterProfile', backref='user', uselist=False, lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'is_verified': self.is_verified,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class VoterProfile(db.Model):
    __tablename__ = 'voter_profiles'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    dob = db.Column(db.Date, nullable=False)
    voter_id = db.Column(db.String(20), unique=True)
    face_data = db.Column(db.Text)  # base64 reference image
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        # face_data stays server side
        return {
            'name': self.name,
            'address': self.address,
            'dob': self.dob.isoformat(),
            'voter_id': self.voter_id,
            'is_verified': self.is_verified,
            'has_face_reference': bool(self.face_data),
        }


class Election(db.Model):
    __tablename__ = 'elections'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)

    candidates = db.relationship('Candidate', backref='election', lazy=True)

    def is_active(self, now):
        return self.start_date <= now <= self.end_date

    def has_candidate(self, candidate_id):
        return any(c.id == candidate_id for c in self.candidates)


class Candidate(db.Model):
    __tablename__ = 'candidates'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    party = db.Column(db.String(50))


class Vote(db.Model):
    __tablename__ = 'votes'
    # Authoritative one-vote-per-election guarantee
    __table_args__ = (
        db.UniqueConstraint('election_id', 'voter_id', name='uq_vote_election_voter'),
    )

    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id'), nullable=False)
    voter_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.id'), nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    location = db.Column(db.JSON)
    facial_verification = db.Column(db.JSON)
    attestation_ref = db.Column(db.String(130))
    is_anonymous = db.Column(db.Boolean, nullable=False, default=True)

    election = db.relationship('Election', lazy=True)

    def to_receipt(self):
        """Caller-facing view: no voter id, location or biometric result."""
        return {
            'id': self.id,
            'election_id': self.election_id,
            'candidate_id': self.candidate_id,
            'timestamp': self.timestamp.isoformat(),
            'attestation_ref': self.attestation_ref,
            'is_anonymous': self.is_anonymous,
        }

    def to_history_entry(self):
        return {
            'id': self.id,
            'election': {
                'id': self.election.id,
                'title': self.election.title,
                'start_date': self.election.start_date.isoformat(),
                'end_date': self.election.end_date.isoformat(),
            },
            'timestamp': self.timestamp.isoformat(),
            'attestation_ref': self.attestation_ref,
        }

    def __repr__(self):
        return f'<Vote {self.id} in Election {self.election_id}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(100), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    details = db.Column(db.JSON)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    # Unique so two writers can never both extend the same head
    previous_hash = db.Column(db.String(64), unique=True, nullable=False)
    entry_hash = db.Column(db.String(64), nullable=False)
