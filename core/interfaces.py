"""
Gate Collaborator Interfaces

Narrow seams the core consumes. Implementations live in the
persistence package; the core never imports them directly.

Contract shared by every lookup: never raise into the core. On failure
return a complete, neutral result.
"""

from typing import Protocol

from core.schemas.inputs import GeoData, ReputationSignals
from core.schemas.outputs import ClickAuditEntry, VerificationAuditEntry


class ReputationProvider(Protocol):
    def get_reputation(self, ip: str) -> ReputationSignals: ...


class GeoProvider(Protocol):
    def get_geo(self, ip: str) -> GeoData: ...


class RateCounter(Protocol):
    def exceeded(self, ip: str) -> bool: ...


class AuditSink(Protocol):
    def record_click(self, entry: ClickAuditEntry) -> None: ...

    def record_verification(self, entry: VerificationAuditEntry) -> None: ...


class NonceRegistry(Protocol):
    def consume(self, nonce: str, expires_at: int) -> bool:
        """True the first time a nonce is seen, False on reuse."""
        ...
