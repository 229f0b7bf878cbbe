# ballotguard/security/geolocation.py

# Best-effort location for the vote record. A failed lookup never blocks a vote.

import ipaddress
import logging
import time
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


class GeoLocator:
    def __init__(self, lookup_url: Optional[str] = None, timeout: float = 2.0, cache_ttl: int = 3600,
                 max_cache_entries: int = 1024):
        """
        lookup_url: template with an `{ip}` placeholder, e.g. http://ip-api.com/json/{ip}.
            When unset only the IP address is recorded.
        """
        self.lookup_url = lookup_url
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.max_cache_entries = max_cache_entries
        self.geolocation_cache: Dict[str, tuple] = {}  # ip -> (fetched_at, location)

    def locate(self, ip_address: Optional[str]) -> Dict:
        location = {"ip": ip_address}
        if not ip_address:
            return location
        try:
            addr = ipaddress.ip_address(ip_address)
        except ValueError:
            return location
        if addr.is_private or addr.is_loopback or not self.lookup_url:
            return location

        cached = self.geolocation_cache.get(ip_address)
        if cached and time.time() - cached[0] < self.cache_ttl:
            return dict(cached[1])

        try:
            response = requests.get(self.lookup_url.format(ip=ip_address), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geolocation lookup failed for {ip_address}: {e}")
            return location

        location.update({
            "country": data.get("country") or data.get("country_name"),
            "region": data.get("regionName") or data.get("region"),
            "city": data.get("city"),
            "lat": data.get("lat", data.get("latitude")),
            "lng": data.get("lon", data.get("longitude")),
        })
        self._cache_put(ip_address, location)
        return dict(location)

    def _cache_put(self, ip_address: str, location: Dict):
        now = time.time()
        expired = [ip for ip, (fetched_at, _) in self.geolocation_cache.items()
                   if now - fetched_at >= self.cache_ttl]
        for ip in expired:
            del self.geolocation_cache[ip]
        # Still full: drop the oldest insertions first
        while len(self.geolocation_cache) >= self.max_cache_entries:
            del self.geolocation_cache[next(iter(self.geolocation_cache))]
        self.geolocation_cache[ip_address] = (now, location)
