"""
Gate Core Schemas

Public exports for input and output Pydantic models.
"""

# Input schemas - Collaborator results and signal bundle
from core.schemas.inputs import (
    CAMPAIGN_PARAMS,
    UNKNOWN_ASN,
    UNKNOWN_COUNTRY,
    GeoData,
    ReputationSignals,
    SignalBundle,
)

# Input schemas - Challenge verification
from core.schemas.inputs import (
    ChallengeSignals,
    VerifyRequest,
)

# Output schemas
from core.schemas.outputs import (
    ClickAuditEntry,
    GateDecision,
    GateOutcome,
    RiskAssessment,
    VerificationAuditEntry,
    VerificationFailure,
    VerificationOutcome,
    VerifyResponse,
)

__all__ = [
    # Input - Constants
    "CAMPAIGN_PARAMS",
    "UNKNOWN_ASN",
    "UNKNOWN_COUNTRY",
    # Input - Signals
    "ReputationSignals",
    "GeoData",
    "SignalBundle",
    "ChallengeSignals",
    "VerifyRequest",
    # Output
    "GateDecision",
    "VerificationFailure",
    "RiskAssessment",
    "GateOutcome",
    "VerificationOutcome",
    "VerifyResponse",
    "ClickAuditEntry",
    "VerificationAuditEntry",
]
