from ballotguard import db
from ballotguard.audit.audit_logger import GENESIS_HASH, RequestContext
from ballotguard.database.models import AuditLog


def test_record_basic(services, voter):
    context = RequestContext(ip_address="203.0.113.7", user_agent="Mozilla/5.0")
    entry = services.audit_logger.record("Voting link generated", voter.id, context, {"electionId": 3})

    stored = db.session.get(AuditLog, entry.id)
    assert stored.action == "Voting link generated"
    assert stored.user_id == voter.id
    assert stored.ip_address == "203.0.113.7"
    assert stored.user_agent == "Mozilla/5.0"
    assert stored.details == {"electionId": 3}
    assert stored.timestamp is not None
    assert stored.previous_hash == GENESIS_HASH  # First entry
    assert len(stored.entry_hash) == 64


def test_record_without_context(services):
    entry = services.audit_logger.record("System event")
    assert entry.user_id is None
    assert entry.ip_address is None
    assert entry.details == {}


def test_hash_chaining(services):
    first = services.audit_logger.record("EVENT1", details={"data": "first"})
    second = services.audit_logger.record("EVENT2", details={"data": "second"})
    assert second.previous_hash == first.entry_hash


def test_verify_chain_valid(services):
    for i in range(3):
        services.audit_logger.record(f"EVENT{i}", details={"n": i})
    assert services.audit_logger.verify_chain() is True


def test_verify_chain_detects_tampering(services):
    services.audit_logger.record("Vote cast", details={"electionId": 1, "candidateId": 2})
    services.audit_logger.record("Vote cast", details={"electionId": 1, "candidateId": 3})

    db.session.query(AuditLog).filter_by(id=1).update({"details": {"electionId": 1, "candidateId": 9}})
    db.session.commit()

    assert services.audit_logger.verify_chain() is False


def test_verify_chain_detects_deleted_entry(services):
    for i in range(3):
        services.audit_logger.record(f"EVENT{i}")
    db.session.query(AuditLog).filter_by(id=2).delete()
    db.session.commit()

    assert services.audit_logger.verify_chain() is False


def test_append_retries_when_another_writer_moved_the_head(services, monkeypatch):
    first = services.audit_logger.record("EVENT1")
    second = services.audit_logger.record("EVENT2")
    stale_head, current_head = first.entry_hash, second.entry_hash

    # First read sees the head as it was before EVENT2 was appended elsewhere
    heads = iter([stale_head])
    original_head = services.audit_logger._chain_head
    monkeypatch.setattr(services.audit_logger, "_chain_head", lambda: next(heads, None) or original_head())

    third = services.audit_logger.record("EVENT3")
    assert third.previous_hash == current_head
    assert db.session.query(AuditLog).count() == 3
    assert services.audit_logger.verify_chain() is True
