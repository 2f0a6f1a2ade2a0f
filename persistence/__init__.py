"""
Gate Persistence Layer

Collaborator adapters: Redis connection, rate counter, nonce registry,
reputation and geolocation lookups, audit logging.
"""

from .connection import get_redis_client
from .audit_logger import AuditLogger
from .geolocation import MaxMindGeoResolver
from .nonce_registry import RedisNonceRegistry
from .rate_counter import FixedWindowRateCounter
from .reputation import IPQSReputationClient

__all__ = [
    "get_redis_client",
    "AuditLogger",
    "FixedWindowRateCounter",
    "IPQSReputationClient",
    "MaxMindGeoResolver",
    "RedisNonceRegistry",
]
