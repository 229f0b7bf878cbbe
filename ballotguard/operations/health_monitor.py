# ballotguard/operations/health_monitor.py

# Readiness checks for the database and the credential store

import logging
from typing import Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ballotguard import db

logger = logging.getLogger(__name__)


def _check_db() -> Dict:
    try:
        db.session.execute(text("SELECT 1"))
        return {"ok": True}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db.session.rollback()
        return {"ok": False, "error": "database unreachable"}


def _check_credential_store(store) -> Dict:
    if store.ping():
        return {"ok": True}
    logger.error("Credential store health check failed")
    return {"ok": False, "error": "credential store unreachable"}


def health_report(store) -> Dict:
    checks = {
        "database": _check_db(),
        "credential_store": _check_credential_store(store),
    }
    return {"ok": all(c["ok"] for c in checks.values()), "checks": checks}
