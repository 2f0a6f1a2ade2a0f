"""
Traffic Gate Test Suite - Shared Pytest Fixtures

This conftest.py provides fixtures for all test categories including:
- Rule configurations (shipped file and minimal in-memory rules)
- A token codec with a controllable clock
- In-memory collaborator fakes (reputation, geo, rate counter, audit)
- A fully wired GateOrchestrator

Usage:
    pytest tests/ -v
"""

import os
from typing import Dict, List, Optional

import pytest

from core.orchestrator import GateOrchestrator
from core.processors.context import RequestContextProcessor
from core.rules import RuleConfig, RuleStore, load_rules
from core.schemas.inputs import GeoData, ReputationSignals, SignalBundle
from core.schemas.outputs import ClickAuditEntry, VerificationAuditEntry
from core.tokens import ChallengeTokenCodec


TEST_SECRET = "test-secret-do-not-use"
PUBLIC_IP = "93.184.216.34"
OTHER_PUBLIC_IP = "8.8.4.4"
REDIRECT_URL = "https://tracker.example.com/click"

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


# =============================================================================
# Path Helpers
# =============================================================================

def get_project_root() -> str:
    """Get the absolute path to the project root."""
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def get_rules_path() -> str:
    """Get the absolute path to the shipped scoring rules."""
    return os.path.join(get_project_root(), "config", "scoring_rules.json")


# =============================================================================
# Builders
# =============================================================================

def make_bundle(**overrides) -> SignalBundle:
    """SignalBundle with a clean public IP and browser UA unless overridden."""
    fields = {"ip": PUBLIC_IP, "user_agent": CHROME_UA}
    fields.update(overrides)
    return SignalBundle(**fields)


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Collaborator Fakes
# =============================================================================

class FakeReputation:
    def __init__(self, signals: Optional[ReputationSignals] = None, error: Optional[Exception] = None) -> None:
        self.signals = signals or ReputationSignals.neutral()
        self.error = error
        self.calls: List[str] = []

    def get_reputation(self, ip: str) -> ReputationSignals:
        self.calls.append(ip)
        if self.error is not None:
            raise self.error
        return self.signals


class FakeGeo:
    def __init__(self, geo: Optional[GeoData] = None) -> None:
        self.geo = geo or GeoData()
        self.calls: List[str] = []

    def get_geo(self, ip: str) -> GeoData:
        self.calls.append(ip)
        return self.geo


class FakeRateCounter:
    def __init__(self, exceeded: bool = False) -> None:
        self.is_exceeded = exceeded

    def exceeded(self, ip: str) -> bool:
        return self.is_exceeded


class RecordingAudit:
    def __init__(self, fail: bool = False) -> None:
        self.clicks: List[ClickAuditEntry] = []
        self.verifications: List[VerificationAuditEntry] = []
        self.fail = fail

    def record_click(self, entry: ClickAuditEntry) -> None:
        if self.fail:
            raise RuntimeError("audit store down")
        self.clicks.append(entry)

    def record_verification(self, entry: VerificationAuditEntry) -> None:
        if self.fail:
            raise RuntimeError("audit store down")
        self.verifications.append(entry)


class MemoryNonceRegistry:
    def __init__(self) -> None:
        self.seen: Dict[str, int] = {}

    def consume(self, nonce: str, expires_at: int) -> bool:
        if nonce in self.seen:
            return False
        self.seen[nonce] = expires_at
        return True


# =============================================================================
# Rule Fixtures
# =============================================================================

@pytest.fixture
def shipped_rules() -> RuleConfig:
    """Rules from config/scoring_rules.json."""
    return load_rules(get_rules_path())


@pytest.fixture
def default_rules() -> RuleConfig:
    """Rules with every optional section at its default."""
    return RuleConfig(challenge_rules={})


# =============================================================================
# Codec & Orchestrator Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock) -> ChallengeTokenCodec:
    return ChallengeTokenCodec(TEST_SECRET, clock=clock)


@pytest.fixture
def reputation() -> FakeReputation:
    return FakeReputation()


@pytest.fixture
def geo() -> FakeGeo:
    return FakeGeo(GeoData(country_code="US", asn=7922))


@pytest.fixture
def rate_counter() -> FakeRateCounter:
    return FakeRateCounter()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def make_orchestrator(shipped_rules, codec, reputation, geo, rate_counter, audit):
    """Factory for a GateOrchestrator over the fakes; keyword overrides allowed."""
    def _make(rules: Optional[RuleConfig] = None, **overrides) -> GateOrchestrator:
        kwargs = dict(
            rules=RuleStore.from_rules(rules or shipped_rules),
            codec=codec,
            context=RequestContextProcessor(reputation=reputation, geo=geo),
            rate_counter=rate_counter,
            audit=audit,
            redirect_url=REDIRECT_URL,
        )
        kwargs.update(overrides)
        return GateOrchestrator(**kwargs)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator) -> GateOrchestrator:
    return make_orchestrator()
