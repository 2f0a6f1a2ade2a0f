"""
Pydantic Schema Validation Tests

Tests for input and output schemas to ensure proper validation,
aliasing, defaults and immutability.
"""

import pytest
from pydantic import ValidationError

from core.schemas.inputs import (
    CAMPAIGN_PARAMS,
    ChallengeSignals,
    GeoData,
    ReputationSignals,
    SignalBundle,
    VerifyRequest,
)
from core.schemas.outputs import (
    ClickAuditEntry,
    GateDecision,
    GateOutcome,
    RiskAssessment,
    VerificationOutcome,
    VerifyResponse,
)


# =============================================================================
# Input Schemas
# =============================================================================

class TestReputationSignals:
    """Provider records parse with their upstream field names."""

    def test_parses_provider_payload(self):
        record = ReputationSignals.model_validate({
            "success": True,
            "fraud_score": 87,
            "vpn": True,
            "tor": False,
            "ISP": "Example Hosting",
            "ASN": 14061,
            "country_code": "NL",
        })

        assert record.fraud_score == 87
        assert record.vpn is True
        assert record.isp == "Example Hosting"
        assert record.asn == 14061

    def test_accepts_python_field_names(self):
        assert ReputationSignals(isp="x", asn=1).isp == "x"

    def test_missing_fraud_score_is_none(self):
        assert ReputationSignals().fraud_score is None

    def test_non_finite_fraud_score_rejected(self):
        with pytest.raises(ValidationError):
            ReputationSignals(fraud_score=float("nan"))

    def test_neutral_stub(self):
        stub = ReputationSignals.neutral()

        assert stub.fraud_score == 0
        assert not any([stub.vpn, stub.proxy, stub.tor, stub.bot_status, stub.recent_abuse])
        assert stub.isp == "Unknown ISP"

    def test_frozen(self):
        with pytest.raises(ValidationError):
            ReputationSignals().vpn = True


class TestSignalBundle:

    def test_defaults_are_unknown(self):
        bundle = SignalBundle()

        assert bundle.country_code == "XX"
        assert bundle.asn == 0
        assert bundle.reputation is None
        assert bundle.rate_limited is False

    def test_geo_defaults(self):
        geo = GeoData()
        assert geo.country_code == "XX"
        assert geo.timezone == "UTC"


class TestChallengeSignals:

    def test_all_fields_optional(self):
        signals = ChallengeSignals.model_validate({})
        assert signals.model_dump() == {field: None for field in ChallengeSignals.model_fields}

    def test_unknown_fields_ignored(self):
        signals = ChallengeSignals.model_validate({"webdriver": True, "plugins": 3})
        assert signals.webdriver is True

    def test_wrong_types_rejected(self):
        with pytest.raises(ValidationError):
            ChallengeSignals.model_validate({"mouse_movements": "lots"})


class TestVerifyRequest:

    def test_empty_body(self):
        request = VerifyRequest.model_validate({})
        assert request.token == ""
        assert request.signals == {}

    def test_signals_kept_raw(self):
        request = VerifyRequest.model_validate({"token": "a.b", "signals": {"screen_width": "wide"}})
        assert request.signals == {"screen_width": "wide"}


# =============================================================================
# Output Schemas
# =============================================================================

class TestOutputs:

    def test_risk_score_bounds(self):
        with pytest.raises(ValidationError):
            RiskAssessment(score=101, decision=GateDecision.DENY)
        with pytest.raises(ValidationError):
            GateOutcome(decision=GateDecision.DENY, risk_score=-1, redirect_url="/white.html")

    def test_decision_values(self):
        assert [d.value for d in GateDecision] == ["ALLOW", "CHALLENGE", "DENY"]

    def test_verification_outcome_defaults_to_deny(self):
        outcome = VerificationOutcome(action="deny")

        assert outcome.decision == GateDecision.DENY
        assert not outcome.allowed

    def test_verify_response_omits_none(self):
        assert VerifyResponse(action="deny").model_dump(exclude_none=True) == {"action": "deny"}

    def test_click_audit_has_every_campaign_param(self):
        entry = ClickAuditEntry(
            timestamp="2024-01-01T00:00:00+00:00",
            ip_address="93.184.216.34",
            user_agent="",
            decision="ALLOW",
            redirect_url="https://example.com/",
        )
        dumped = entry.model_dump()

        for name in CAMPAIGN_PARAMS:
            assert dumped[name] == ""
