"""
Gate Core Output Schemas

This module defines Pydantic V2 models for decisions, gate and
verification outcomes, and the flat audit records handed to the
audit sink.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class GateDecision(str, Enum):
    """Outcome of thresholding a risk or challenge score."""
    ALLOW = "ALLOW"
    CHALLENGE = "CHALLENGE"
    DENY = "DENY"


class VerificationFailure(str, Enum):
    """Typed reasons a verification call resolves to deny."""
    MISSING_TOKEN = "missing_token"
    INVALID_REFERER = "invalid_referer"
    INVALID_TOKEN = "invalid_token"
    IP_MISMATCH = "ip_mismatch"
    TOKEN_REPLAYED = "token_replayed"
    INVALID_SIGNALS = "invalid_signals"
    INTERNAL_ERROR = "internal_error"


# =============================================================================
# Scoring Results
# =============================================================================

class RiskAssessment(BaseModel):
    """Stage-1 scoring result."""
    score: int = Field(..., ge=0, le=100, description="Bounded risk score")
    decision: GateDecision = Field(..., description="Thresholded decision")
    factors: List[str] = Field(
        default_factory=list,
        description="Names of the rules that contributed to the score"
    )


# =============================================================================
# Gate / Verification Outcomes
# =============================================================================

class GateOutcome(BaseModel):
    """Result of the gating call: where to send the visitor."""
    decision: GateDecision
    risk_score: int = Field(..., ge=0, le=100)
    redirect_url: str
    token: Optional[str] = None
    factors: List[str] = Field(default_factory=list)


class VerificationOutcome(BaseModel):
    """Result of the challenge verification call."""
    action: str = Field(..., description="allow or deny")
    redirect: Optional[str] = None
    decision: GateDecision = GateDecision.DENY
    challenge_score: Optional[int] = Field(None, ge=0, le=100)
    failure: Optional[VerificationFailure] = None
    failure_detail: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.action == "allow"


class VerifyResponse(BaseModel):
    """JSON body returned by the verification endpoint."""
    action: str
    redirect: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Audit Records
# =============================================================================

class ClickAuditEntry(BaseModel):
    """Flat record of one gating decision."""
    timestamp: str
    ip_address: str
    user_agent: str
    gclid: str = ""
    clickid: str = ""
    utm_source: str = ""
    utm_medium: str = ""
    utm_campaign: str = ""
    utm_term: str = ""
    utm_content: str = ""
    country: str = "XX"
    asn: int = 0
    ipqs_score: float = 0
    risk_score: int = 0
    decision: str
    redirect_url: str
    processing_time_ms: float = 0.0


class VerificationAuditEntry(BaseModel):
    """Flat record of one challenge verification."""
    timestamp: str
    ip_address: str
    token_valid: bool
    challenge_score: Optional[int] = None
    decision: Optional[str] = None
    signals: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
