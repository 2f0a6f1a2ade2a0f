"""
Gate Request Context Processor

Enriches a raw request into a Signal Bundle.
No decisions. No blocking. Pure signal assembly.

Uses the reputation and geolocation collaborators for IP facts and the
user_agents parser for the automation pre-screen.
"""

import ipaddress
import logging
import re
from typing import Mapping, Optional

from user_agents import parse as parse_user_agent

from core.interfaces import GeoProvider, ReputationProvider
from core.schemas.inputs import GeoData, ReputationSignals, SignalBundle


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Forwarding headers checked in order; the first public IP wins
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "client-ip")

FALLBACK_CLIENT_IP = "127.0.0.1"

# Tools that never reach the scoring stage
AUTOMATION_UA_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in [
        r"bot", r"crawler", r"spider", r"curl", r"wget",
        r"python", r"java", r"go-http", r"ruby",
    ]
]


# =============================================================================
# Helpers
# =============================================================================

def is_public_ip(value: str) -> bool:
    """True for a syntactically valid, globally routable address."""
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return not (
        address.is_private
        or address.is_reserved
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_unspecified
    )


def resolve_client_ip(headers: Mapping[str, str], peer: Optional[str]) -> str:
    """
    Resolve the visitor IP.

    Takes the first entry of each forwarding header in order and accepts
    it only if it is a public address. Falls back to the socket peer.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    for header in CLIENT_IP_HEADERS:
        value = lowered.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if is_public_ip(candidate):
            return candidate
    return peer or FALLBACK_CLIENT_IP


def is_automation_user_agent(user_agent: str) -> bool:
    """
    Detect obvious tooling UAs (HTTP libraries, crawlers).

    Checks the fixed pattern list first, then the ua parser's bot flag.
    An empty UA is not treated as automation here; the scoring rules
    decide what it is worth.
    """
    if not user_agent:
        return False

    for pattern in AUTOMATION_UA_PATTERNS:
        if pattern.search(user_agent):
            return True

    return parse_user_agent(user_agent).is_bot


# =============================================================================
# Context Processor
# =============================================================================

class RequestContextProcessor:
    """
    Builds Signal Bundles from collaborator lookups.

    Both lookups follow the degrade-to-stub contract; a lookup that
    raises anyway is logged and replaced by its neutral record so the
    bundle is always complete.
    """

    def __init__(self, reputation: ReputationProvider, geo: GeoProvider) -> None:
        self.reputation = reputation
        self.geo = geo

    def build_bundle(self, ip: str, user_agent: str, rate_limited: bool) -> SignalBundle:
        reputation = self._lookup_reputation(ip)
        geo = self._lookup_geo(ip)

        return SignalBundle(
            ip=ip,
            user_agent=user_agent or "",
            country_code=geo.country_code,
            asn=geo.asn,
            reputation=reputation,
            rate_limited=rate_limited,
        )

    def _lookup_reputation(self, ip: str) -> ReputationSignals:
        try:
            return self.reputation.get_reputation(ip)
        except Exception as e:
            logger.warning(f"Reputation lookup raised for {ip}, using stub: {e}")
            return ReputationSignals.neutral()

    def _lookup_geo(self, ip: str) -> GeoData:
        try:
            return self.geo.get_geo(ip)
        except Exception as e:
            logger.warning(f"Geo lookup raised for {ip}, using stub: {e}")
            return GeoData()
