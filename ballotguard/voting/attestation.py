# ballotguard/voting/attestation.py
"""Tamper-evidence for stored votes.

The casting engine only depends on one method, ``record(vote_summary) ->
reference``. The bundled ``SignedHashLedger`` appends each summary to a JSON
lines file, chains it to the previous entry with SHA-256 and signs it with
Ed25519. The reference handed back is ``0x`` + the entry hash, so anyone
holding the ledger file and the public key can later prove a vote summary
was recorded and that nothing before it was rewritten.

Vote summaries never contain the voter or the chosen candidate.
"""

import base64
import hashlib
import json
import logging
import os
import secrets
import threading
from datetime import datetime

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

logger = logging.getLogger(__name__)


class AttestationError(Exception):
    """The ledger could not record a summary."""


class SignedHashLedger:
    def __init__(self, path, private_key_pem=None):
        self.path = path
        self._lock = threading.Lock()
        if private_key_pem:
            self.signing_key = serialization.load_pem_private_key(private_key_pem.encode(), password=None)
        else:
            self.signing_key = Ed25519PrivateKey.generate()
            logger.warning("Attestation ledger using an ephemeral signing key")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.previous_hash = self._load_previous_hash()

    def _load_previous_hash(self):
        if not os.path.exists(self.path):
            return None
        with open(self.path, 'r') as f:
            lines = [line for line in f if line.strip()]
        if not lines:
            return None
        return json.loads(lines[-1]).get('hash')

    def public_key_pem(self):
        return self.signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()

    def record(self, vote_summary):
        with self._lock:
            entry = {
                "summary": vote_summary,
                "nonce": secrets.token_hex(16),
                "recorded_at": datetime.utcnow().isoformat(),
                "previous_hash": self.previous_hash,
            }
            entry_json = json.dumps(entry, sort_keys=True, default=str)
            entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
            signature = self.signing_key.sign(entry_json.encode())
            entry["hash"] = entry_hash
            entry["signature"] = base64.b64encode(signature).decode()
            try:
                with open(self.path, 'a') as f:
                    f.write(json.dumps(entry, default=str) + "\n")
            except OSError as e:
                raise AttestationError(f"Ledger write failed: {e}") from e
            self.previous_hash = entry_hash
        return f"0x{entry_hash}"

    def verify(self):
        """Check the whole chain and every signature."""
        if not os.path.exists(self.path):
            return True
        public_key = self.signing_key.public_key()
        previous_hash = None
        with open(self.path, 'r') as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                    signature = base64.b64decode(entry.pop('signature'))
                    entry_hash = entry.pop('hash')
                except (ValueError, KeyError):
                    return False
                if entry.get('previous_hash') != previous_hash:
                    return False
                entry_json = json.dumps(entry, sort_keys=True, default=str).encode()
                if hashlib.sha256(entry_json).hexdigest() != entry_hash:
                    return False
                try:
                    public_key.verify(signature, entry_json)
                except InvalidSignature:
                    return False
                previous_hash = entry_hash
        return True
