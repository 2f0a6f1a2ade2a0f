"""
Gate IP Reputation Client

IPQualityScore lookups with a Redis read-through cache.

Key Schema:
    ipqs:ip:{ip}  → ReputationSignals JSON (6h TTL, 5min after an API error)

Never raises: a missing API key, an API failure or a cache failure all
resolve to the neutral stub record.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx
import redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from core.schemas.inputs import ReputationSignals


logger = logging.getLogger(__name__)


class IPQSReputationClient:
    """Reputation collaborator backed by the IPQS JSON API."""

    API_URL = "https://ipqualityscore.com/api/json/ip/{api_key}/{ip}"
    CACHE_PREFIX = "ipqs:ip:"
    CACHE_TTL = 21600       # 6 hours
    ERROR_CACHE_TTL = 300   # 5 minutes
    TIMEOUT_SECONDS = 5.0

    QUERY_PARAMS: Dict[str, Any] = {
        "strictness": 1,
        "allow_public_access_points": "true",
        "fast": "true",
        "lighter_penalties": "false",
        "mobile": "true",
    }

    def __init__(
        self,
        api_key: Optional[str],
        cache: Optional[redis.Redis] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key or None
        self.cache = cache
        self.http = http_client or httpx.Client(
            timeout=self.TIMEOUT_SECONDS,
            headers={"User-Agent": "TrafficGate/1.0"},
        )
        if self.api_key is None:
            logger.warning("IPQS_API_KEY not configured, reputation lookups return stub data")

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def get_reputation(self, ip: str) -> ReputationSignals:
        cached = self._cache_get(ip)
        if cached is not None:
            return cached

        if self.api_key is None:
            stub = ReputationSignals.neutral()
            self._cache_set(ip, stub, self.CACHE_TTL)
            return stub

        try:
            signals = self._call_api(ip)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error(f"IPQS API error for {ip}: {e}")
            stub = ReputationSignals.neutral()
            self._cache_set(ip, stub, self.ERROR_CACHE_TTL)
            return stub

        self._cache_set(ip, signals, self.CACHE_TTL)
        return signals

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------

    def _call_api(self, ip: str) -> ReputationSignals:
        url = self.API_URL.format(api_key=self.api_key, ip=ip)
        response = self.http.get(url, params=self.QUERY_PARAMS)
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict) or not data.get("success"):
            raise ValueError("IPQS API returned invalid response")

        return ReputationSignals.model_validate(data)

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def _cache_get(self, ip: str) -> Optional[ReputationSignals]:
        if self.cache is None:
            return None
        try:
            data = self.cache.get(self.CACHE_PREFIX + ip)
            if data is None:
                return None
            return ReputationSignals.model_validate(json.loads(data))
        except (RedisError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Reputation cache read failed for {ip}: {e}")
            return None

    def _cache_set(self, ip: str, signals: ReputationSignals, ttl: int) -> None:
        if self.cache is None:
            return
        try:
            self.cache.setex(
                self.CACHE_PREFIX + ip,
                ttl,
                signals.model_dump_json(by_alias=True),
            )
        except RedisError as e:
            logger.warning(f"Reputation cache write failed for {ip}: {e}")
