# ballotguard/voting/face_verification.py

import logging

import requests

from ballotguard.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

# Client for the external face-similarity service. The acceptance threshold
# is applied by the casting engine, not here.


class HttpFaceOracle:
    def __init__(self, url, timeout=10.0):
        self.url = url
        self.timeout = timeout

    def compare(self, reference_image, captured_image):
        """Return {"is_verified": bool, "similarity_score": float} from the service."""
        payload = {"source_image": reference_image, "target_image": captured_image}
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Face oracle request error: {e}")
            raise ServiceUnavailable('Face verification service unavailable') from e

        score = float(result.get("similarity_score", result.get("similarity", 0.0)) or 0.0)
        return {
            "is_verified": bool(result.get("is_verified", score > 0)),
            "similarity_score": score,
        }


class UnconfiguredFaceOracle:
    """Used when FACE_ORACLE_URL is unset; any comparison is a service outage."""

    def compare(self, reference_image, captured_image):
        raise ServiceUnavailable('Face verification service unavailable')
