"""
Gate Risk Scoring Engine

Additive, rule-weighted scoring of a Signal Bundle.
This module is STATELESS and DETERMINISTIC for a given clock.

No I/O. No lookups. Just weights.
"""

import math
import re
from datetime import datetime
from typing import List, Optional, Tuple

from core.models.decision import decide
from core.rules import RuleConfig
from core.schemas.inputs import SignalBundle
from core.schemas.outputs import RiskAssessment


MIN_SCORE = 0
MAX_SCORE = 100

# (reputation flag attribute, rule weight attribute)
REPUTATION_WEIGHTS: Tuple[Tuple[str, str], ...] = (
    ("vpn", "ipqs_vpn_weight"),
    ("proxy", "ipqs_proxy_weight"),
    ("tor", "ipqs_tor_weight"),
    ("bot_status", "ipqs_bot_weight"),
    ("recent_abuse", "ipqs_abuse_weight"),
)


def clamp_score(total: float) -> int:
    """Round half-up and clamp into [0, 100]. Non-finite totals fail closed."""
    if math.isnan(total):
        return MAX_SCORE
    if total <= MIN_SCORE:
        return MIN_SCORE
    if total >= MAX_SCORE:
        return MAX_SCORE
    return int(math.floor(total + 0.5))


def match_user_agent(user_agent: str, rules: RuleConfig) -> Optional[Tuple[str, float]]:
    """Return the first configured pattern found in the UA, case-insensitive."""
    if not user_agent:
        return None
    for pattern, weight in rules.ua_bot_patterns.items():
        if re.search(re.escape(pattern), user_agent, re.IGNORECASE):
            return pattern, weight
    return None


def score_contributions(
    bundle: SignalBundle,
    rules: RuleConfig,
    now: Optional[datetime] = None,
) -> List[Tuple[str, float]]:
    """
    List every (factor, weight) pair that applies to the bundle.

    Order-independent except for the UA scan, which stops at the first
    matching pattern.
    """
    contributions: List[Tuple[str, float]] = []

    # Country
    country_weight = rules.country_blocklist.get(bundle.country_code)
    if country_weight is not None:
        contributions.append((f"country:{bundle.country_code}", country_weight))

    # Reputation
    reputation = bundle.reputation
    if reputation is not None:
        for flag, weight_name in REPUTATION_WEIGHTS:
            weight = getattr(rules, weight_name)
            if getattr(reputation, flag) and weight is not None:
                contributions.append((f"reputation:{flag}", weight))

        if reputation.fraud_score is not None and rules.ipqs_fraud_multiplier is not None:
            contributions.append((
                "reputation:fraud_score",
                float(reputation.fraud_score) * rules.ipqs_fraud_multiplier,
            ))

    # ASN
    asn_key = f"AS{bundle.asn}"
    asn_weight = rules.asn_suspicious.get(asn_key)
    if asn_weight is not None:
        contributions.append((f"asn:{asn_key}", asn_weight))

    # User agent (first match only)
    ua_match = match_user_agent(bundle.user_agent, rules)
    if ua_match is not None:
        pattern, weight = ua_match
        contributions.append((f"user_agent:{pattern}", weight))

    # Time of day
    timing = rules.time_based_scoring
    if timing is not None and timing.enabled:
        hour = (now or datetime.now()).hour
        if hour in timing.suspicious_hours:
            contributions.append((f"hour:{hour}", timing.weight))

    # Rate limit
    if bundle.rate_limited:
        contributions.append(("rate_limited", rules.rate_limit_penalty))

    return contributions


def score(
    bundle: SignalBundle,
    rules: RuleConfig,
    now: Optional[datetime] = None,
) -> int:
    """Bounded [0, 100] risk score for the bundle."""
    return clamp_score(sum(weight for _, weight in score_contributions(bundle, rules, now)))


class RiskScoringEngine:
    """
    Stateless scoring + thresholding of Signal Bundles.

    Safe to share across threads: holds no per-request state and only
    reads the rule snapshot passed into each call.
    """

    def assess(
        self,
        bundle: SignalBundle,
        rules: RuleConfig,
        now: Optional[datetime] = None,
    ) -> RiskAssessment:
        contributions = score_contributions(bundle, rules, now)
        risk_score = clamp_score(sum(weight for _, weight in contributions))
        return RiskAssessment(
            score=risk_score,
            decision=decide(risk_score, rules.decision_thresholds),
            factors=[name for name, _ in contributions],
        )
