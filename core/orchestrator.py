"""
Gate Orchestrator

Stateless two-stage traffic gate.

Stage 1 (gate):
    UA pre-screen → rate counter → Signal Bundle → score → decision
    ALLOW     → redirect target with campaign params
    CHALLENGE → challenge page carrying a signed token
    DENY      → deny page

Stage 2 (verify):
    token → IP binding → (optional) nonce consumption → challenge score
    → decision. Only ALLOW reaches the redirect target.

Every failure path resolves to denial. Audit writes are fire-and-forget.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import quote

from pydantic import ValidationError

from core.interfaces import AuditSink, NonceRegistry, RateCounter
from core.models.challenge import challenge_score
from core.models.decision import decide
from core.models.scoring import MAX_SCORE, RiskScoringEngine
from core.processors.context import RequestContextProcessor, is_automation_user_agent
from core.redirect import build_redirect_url
from core.rules import RuleStore
from core.schemas.inputs import CAMPAIGN_PARAMS, ChallengeSignals, SignalBundle
from core.schemas.outputs import (
    ClickAuditEntry,
    GateDecision,
    GateOutcome,
    VerificationAuditEntry,
    VerificationFailure,
    VerificationOutcome,
)
from core.tokens import DEFAULT_TTL_SECONDS, ChallengeTokenCodec, TokenInvalid, TokenPayload


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_DENY_URL = "/white.html"
DEFAULT_CHALLENGE_URL = "/js_challenge.html"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def campaign_params(query: Mapping[str, Any]) -> dict:
    """Pick the campaign attribution params out of a query mapping."""
    return {name: str(query.get(name) or "") for name in CAMPAIGN_PARAMS}


# =============================================================================
# Orchestrator
# =============================================================================

class GateOrchestrator:
    """
    Wires the pure core (scoring, decision, token codec) to its collaborators.

    Holds no per-request state. The rule snapshot is read once per call
    from the RuleStore.
    """

    def __init__(
        self,
        rules: RuleStore,
        codec: ChallengeTokenCodec,
        context: RequestContextProcessor,
        rate_counter: RateCounter,
        audit: AuditSink,
        redirect_url: str,
        deny_url: str = DEFAULT_DENY_URL,
        challenge_url: str = DEFAULT_CHALLENGE_URL,
        token_ttl: int = DEFAULT_TTL_SECONDS,
        nonce_registry: Optional[NonceRegistry] = None,
    ) -> None:
        self.rules = rules
        self.codec = codec
        self.context = context
        self.rate_counter = rate_counter
        self.audit = audit
        self.redirect_url = redirect_url
        self.deny_url = deny_url
        self.challenge_url = challenge_url
        self.token_ttl = token_ttl
        self.nonce_registry = nonce_registry
        self.engine = RiskScoringEngine()

        logger.info(
            f"GateOrchestrator initialized (token_ttl={token_ttl}s, "
            f"single_use_tokens={nonce_registry is not None})"
        )

    # -------------------------------------------------------------------------
    # Stage 1: Gate
    # -------------------------------------------------------------------------

    def gate(self, ip: str, user_agent: str, params: Mapping[str, str]) -> GateOutcome:
        """Decide where to send a visitor arriving with campaign `params`."""
        started = time.perf_counter()
        params = dict(params)
        bundle: Optional[SignalBundle] = None

        try:
            if is_automation_user_agent(user_agent):
                logger.info(f"Pre-screen DENY for {ip}: automation user agent")
                outcome = self._deny(MAX_SCORE, ["user_agent:prescreen"])
            else:
                rate_limited = self._rate_limited(ip)
                bundle = self.context.build_bundle(ip, user_agent, rate_limited)
                assessment = self.engine.assess(bundle, self.rules.current)

                if rate_limited:
                    outcome = self._deny(MAX_SCORE, assessment.factors)
                else:
                    outcome = self._route(assessment.decision, assessment.score, ip, params, assessment.factors)

        except Exception as e:
            logger.error(f"Gate evaluation failed for {ip}, denying: {e}")
            outcome = self._deny(MAX_SCORE, ["internal_error"])

        processing_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            f"Gate {outcome.decision.value} ip={ip} score={outcome.risk_score} "
            f"factors={outcome.factors} ({processing_ms:.1f}ms)"
        )
        self._audit_click(ip, user_agent, params, bundle, outcome, processing_ms)
        return outcome

    def _rate_limited(self, ip: str) -> bool:
        try:
            return bool(self.rate_counter.exceeded(ip))
        except Exception as e:
            logger.warning(f"Rate counter failed for {ip}: {e}")
            return False

    def _route(
        self,
        decision: GateDecision,
        risk_score: int,
        ip: str,
        params: Mapping[str, str],
        factors: list,
    ) -> GateOutcome:
        if decision == GateDecision.ALLOW:
            return GateOutcome(
                decision=decision,
                risk_score=risk_score,
                redirect_url=build_redirect_url(self.redirect_url, params),
                factors=factors,
            )

        if decision == GateDecision.CHALLENGE:
            token = self.codec.issue(ip, params, ttl_seconds=self.token_ttl)
            return GateOutcome(
                decision=decision,
                risk_score=risk_score,
                redirect_url=f"{self.challenge_url}?token={quote(token, safe='')}",
                token=token,
                factors=factors,
            )

        return self._deny(risk_score, factors)

    def _deny(self, risk_score: int, factors: list) -> GateOutcome:
        return GateOutcome(
            decision=GateDecision.DENY,
            risk_score=risk_score,
            redirect_url=self.deny_url,
            factors=factors,
        )

    # -------------------------------------------------------------------------
    # Stage 2: Verify
    # -------------------------------------------------------------------------

    def verify(
        self,
        token: Optional[str],
        signals: Mapping[str, Any],
        ip: str,
        referer_ok: bool = True,
    ) -> VerificationOutcome:
        """Validate a challenge token and score the reported browser signals."""
        signals = dict(signals or {})

        try:
            outcome = self._verify(token, signals, ip, referer_ok)
        except Exception as e:
            logger.error(f"Verification failed for {ip}, denying: {e}")
            outcome = VerificationOutcome(
                action="deny",
                failure=VerificationFailure.INTERNAL_ERROR,
                failure_detail=str(e),
            )

        self._audit_verification(ip, signals, outcome)
        return outcome

    def _verify(
        self,
        token: Optional[str],
        signals: dict,
        ip: str,
        referer_ok: bool,
    ) -> VerificationOutcome:
        if not token:
            return self._reject(VerificationFailure.MISSING_TOKEN, "Token is required")

        if not referer_ok:
            return self._reject(VerificationFailure.INVALID_REFERER, "Invalid referer")

        result = self.codec.verify(token)
        if isinstance(result, TokenInvalid):
            return self._reject(VerificationFailure.INVALID_TOKEN, f"Invalid or expired token ({result.value})")

        payload: TokenPayload = result
        if payload.ip != ip:
            return self._reject(VerificationFailure.IP_MISMATCH, "IP mismatch")

        if self.nonce_registry is not None and not self.nonce_registry.consume(payload.nonce, payload.exp):
            return self._reject(VerificationFailure.TOKEN_REPLAYED, "Token already used")

        try:
            challenge_signals = ChallengeSignals.model_validate(signals)
        except ValidationError as e:
            return self._reject(VerificationFailure.INVALID_SIGNALS, f"Invalid signals: {e.error_count()} errors")

        rules = self.rules.current
        cscore = challenge_score(challenge_signals, rules)
        decision = decide(cscore, rules.decision_thresholds)

        if decision == GateDecision.ALLOW:
            return VerificationOutcome(
                action="allow",
                redirect=build_redirect_url(self.redirect_url, payload.redirect_params),
                decision=decision,
                challenge_score=cscore,
            )

        return VerificationOutcome(action="deny", decision=decision, challenge_score=cscore)

    @staticmethod
    def _reject(failure: VerificationFailure, detail: str) -> VerificationOutcome:
        logger.info(f"Verification rejected: {detail}")
        return VerificationOutcome(action="deny", failure=failure, failure_detail=detail)

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def _audit_click(
        self,
        ip: str,
        user_agent: str,
        params: Mapping[str, str],
        bundle: Optional[SignalBundle],
        outcome: GateOutcome,
        processing_ms: float,
    ) -> None:
        try:
            reputation = bundle.reputation if bundle is not None else None
            entry = ClickAuditEntry(
                timestamp=_now_iso(),
                ip_address=ip,
                user_agent=user_agent or "",
                country=bundle.country_code if bundle is not None else "XX",
                asn=bundle.asn if bundle is not None else 0,
                ipqs_score=(reputation.fraud_score or 0) if reputation is not None else 0,
                risk_score=outcome.risk_score,
                decision=outcome.decision.value,
                redirect_url=outcome.redirect_url,
                processing_time_ms=round(processing_ms, 2),
                **campaign_params(params),
            )
            self.audit.record_click(entry)
        except Exception as e:
            logger.error(f"Click audit failed for {ip}: {e}")

    def _audit_verification(self, ip: str, signals: dict, outcome: VerificationOutcome) -> None:
        try:
            token_valid = outcome.failure is None
            entry = VerificationAuditEntry(
                timestamp=_now_iso(),
                ip_address=ip,
                token_valid=token_valid,
                challenge_score=outcome.challenge_score,
                decision=outcome.decision.value if token_valid else None,
                signals=signals if token_valid else {},
                error=outcome.failure_detail,
            )
            self.audit.record_verification(entry)
        except Exception as e:
            logger.error(f"Verification audit failed for {ip}: {e}")
