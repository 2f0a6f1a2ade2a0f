"""
Gate Core Models

Rule-weighted scoring, challenge scoring and the decision state machine.
"""

from core.models.challenge import challenge_score
from core.models.decision import decide
from core.models.scoring import RiskScoringEngine, clamp_score, score

__all__ = [
    "RiskScoringEngine",
    "challenge_score",
    "clamp_score",
    "decide",
    "score",
]
