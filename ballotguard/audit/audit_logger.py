# ballotguard/audit/audit_logger.py

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ballotguard import db
from ballotguard.database.models import AuditLog

logger = logging.getLogger(__name__)

# Append-only audit trail; each row carries the hash of its predecessor.
# previous_hash is unique, so when another worker appends first our insert
# fails and we re-read the head and retry.

GENESIS_HASH = '0' * 64
MAX_APPEND_ATTEMPTS = 5


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def _entry_hash(action, user_id, ip_address, user_agent, details, timestamp, previous_hash):
    payload = {
        "action": action,
        "user_id": user_id,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "details": details,
        "timestamp": timestamp.isoformat(),
        "previous_hash": previous_hash,
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


class AuditLogger:
    def __init__(self):
        self._lock = threading.Lock()

    def _chain_head(self):
        last = db.session.query(AuditLog).order_by(AuditLog.id.desc()).first()
        return last.entry_hash if last else GENESIS_HASH

    def record(self, action, actor_user_id=None, context=None, details=None):
        context = context or RequestContext()
        with self._lock:
            for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
                previous_hash = self._chain_head()
                timestamp = datetime.utcnow()
                entry = AuditLog(
                    action=action,
                    user_id=actor_user_id,
                    ip_address=context.ip_address,
                    user_agent=(context.user_agent or '')[:255] or None,
                    details=details or {},
                    timestamp=timestamp,
                    previous_hash=previous_hash,
                )
                entry.entry_hash = _entry_hash(
                    action, actor_user_id, entry.ip_address, entry.user_agent,
                    entry.details, timestamp, previous_hash,
                )
                db.session.add(entry)
                try:
                    db.session.commit()
                    break
                except IntegrityError:
                    db.session.rollback()
                    if attempt == MAX_APPEND_ATTEMPTS:
                        raise
                    logger.info("Audit chain head moved during append, retrying")
        logger.info(f"Audit: {action} (user {actor_user_id})")
        return entry

    def verify_chain(self):
        """Recompute every hash; False on the first broken link."""
        previous_hash = GENESIS_HASH
        for entry in db.session.query(AuditLog).order_by(AuditLog.id):
            if entry.previous_hash != previous_hash:
                return False
            expected = _entry_hash(
                entry.action, entry.user_id, entry.ip_address, entry.user_agent,
                entry.details, entry.timestamp, entry.previous_hash,
            )
            if entry.entry_hash != expected:
                return False
            previous_hash = entry.entry_hash
        return True
