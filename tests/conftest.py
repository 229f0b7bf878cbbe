import itertools
from datetime import date, datetime, timedelta

import pytest

from ballotguard import create_app, db
from ballotguard.audit.audit_logger import RequestContext
from ballotguard.database.models import Candidate, Election, User, VoterProfile
from ballotguard.errors import DispatchFailed
from ballotguard.security.credential_store import MemoryCredentialStore
from ballotguard.voting.attestation import AttestationError

PASSWORD = "StrongPass123"


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingDispatcher:
    def __init__(self):
        self.outbox = []
        self.fail = False

    def send(self, recipient, subject, message):
        if self.fail:
            raise DispatchFailed()
        self.outbox.append({"recipient": recipient, "subject": subject, "message": message})

    @property
    def last_message(self):
        return self.outbox[-1]["message"]


class FakeFaceOracle:
    def __init__(self, similarity_score=99.0):
        self.similarity_score = similarity_score
        self.calls = []

    def compare(self, reference_image, captured_image):
        self.calls.append((reference_image, captured_image))
        return {"is_verified": self.similarity_score > 0, "similarity_score": self.similarity_score}


class FakeLedger:
    def __init__(self):
        self.summaries = []
        self.fail = False
        self._ids = itertools.count(1)

    def record(self, vote_summary):
        if self.fail:
            raise AttestationError("ledger offline")
        self.summaries.append(vote_summary)
        return f"0x{next(self._ids):064x}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryCredentialStore(clock=clock)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def face_oracle():
    return FakeFaceOracle()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def app(store, dispatcher, face_oracle, ledger):
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'RATELIMIT_ENABLED': False,
            'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-123',
            'FRONTEND_URL': 'http://frontend.test',
        },
        store=store,
        dispatcher=dispatcher,
        face_oracle=face_oracle,
        ledger=ledger,
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def services(app):
    return app.extensions['ballotguard']


@pytest.fixture
def context():
    return RequestContext(ip_address="203.0.113.7", user_agent="pytest")


@pytest.fixture
def make_voter(services):
    counter = itertools.count(1)

    def _make(verified=True, profile_verified=True, face_data=None, email=None):
        n = next(counter)
        user = User(
            email=email or f"voter{n}@example.com",
            password_hash=services.password_service.hash_password(PASSWORD),
            mfa_secret=services.mfa.challenge.generate_secret(),
            is_verified=verified,
        )
        db.session.add(user)
        db.session.flush()
        db.session.add(VoterProfile(
            user_id=user.id,
            name=f"Voter {n}",
            address="1 Main Street",
            dob=date(1990, 1, 1),
            voter_id=f"VOTER{n:04d}",
            face_data=face_data,
            is_verified=profile_verified,
        ))
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_election():
    def _make(start=None, end=None, candidates=("Alice", "Bob")):
        now = datetime.utcnow()
        election = Election(
            title="General Election",
            start_date=start or now - timedelta(days=1),
            end_date=end or now + timedelta(days=1),
        )
        db.session.add(election)
        db.session.flush()
        for name in candidates:
            db.session.add(Candidate(election_id=election.id, name=name))
        db.session.commit()
        return election

    return _make


@pytest.fixture
def voter(make_voter):
    return make_voter()


@pytest.fixture
def election(make_election):
    return make_election()


@pytest.fixture
def password():
    return PASSWORD
