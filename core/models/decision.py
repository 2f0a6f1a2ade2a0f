"""
Gate Decision State Machine

Pure thresholding of a bounded score. Used for both the stage-1 risk
score and the stage-2 challenge score against the same threshold pair.
"""

from core.rules import DecisionThresholds
from core.schemas.outputs import GateDecision


def decide(score: float, thresholds: DecisionThresholds) -> GateDecision:
    """
    Map a score onto a decision.

        DENY:      score >= thresholds.deny
        CHALLENGE: score >= thresholds.challenge
        ALLOW:     otherwise
    """
    if score >= thresholds.deny:
        return GateDecision.DENY
    if score >= thresholds.challenge:
        return GateDecision.CHALLENGE
    return GateDecision.ALLOW
