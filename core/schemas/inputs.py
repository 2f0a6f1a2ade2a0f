"""
Gate Core Input Schemas

This module defines Pydantic V2 models for:
- Collaborator results (ReputationSignals, GeoData)
- The per-request Signal Bundle fed into the scoring engine
- Client-reported challenge telemetry (ChallengeSignals)
- HTTP request bodies (VerifyRequest)

Every model tolerates missing optional fields: an absent value means
"no contribution" to a score, never an error.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


UNKNOWN_COUNTRY = "XX"
UNKNOWN_ASN = 0

# Campaign attribution parameters forwarded to the redirect target
CAMPAIGN_PARAMS = (
    "gclid",
    "clickid",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
)


# =============================================================================
# Collaborator Results
# =============================================================================

class ReputationSignals(BaseModel):
    """
    IP reputation record returned by the reputation collaborator.

    Only the fraud score and the boolean flags participate in scoring;
    the descriptive fields are carried for audit context.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", allow_inf_nan=False)

    fraud_score: Optional[float] = Field(None, description="Fraud score, nominally 0-100")
    vpn: bool = False
    proxy: bool = False
    tor: bool = False
    bot_status: bool = False
    mobile: bool = False
    recent_abuse: bool = False

    country_code: str = UNKNOWN_COUNTRY
    region: str = ""
    city: str = ""
    isp: str = Field("", alias="ISP")
    asn: int = Field(UNKNOWN_ASN, alias="ASN")
    organization: str = ""
    timezone: str = ""
    connection_type: str = ""

    @classmethod
    def neutral(cls) -> "ReputationSignals":
        """Stub record used when the lookup is unavailable."""
        return cls(
            fraud_score=0,
            region="Unknown",
            city="Unknown",
            ISP="Unknown ISP",
            organization="Unknown",
            timezone="UTC",
            connection_type="Unknown",
        )


class GeoData(BaseModel):
    """Country and ASN resolution for an IP address."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    country_code: str = UNKNOWN_COUNTRY
    country_name: str = "Unknown"
    region: str = "Unknown"
    city: str = "Unknown"
    latitude: float = 0.0
    longitude: float = 0.0
    timezone: str = "UTC"
    asn: int = UNKNOWN_ASN
    organization: str = "Unknown"


# =============================================================================
# Signal Bundle
# =============================================================================

class SignalBundle(BaseModel):
    """
    Normalized per-request facts consumed by the scoring engine.

    Created once per request and immutable afterwards.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    ip: str = ""
    user_agent: str = ""
    country_code: str = UNKNOWN_COUNTRY
    asn: int = UNKNOWN_ASN
    reputation: Optional[ReputationSignals] = None
    rate_limited: bool = False


# =============================================================================
# Challenge Telemetry
# =============================================================================

class ChallengeSignals(BaseModel):
    """
    Browser telemetry reported by the challenge page.

    Self-reported and therefore untrusted. Fields the client omits are
    left as None and skipped by the challenge scorer.
    """
    model_config = ConfigDict(extra="ignore")

    webdriver: Optional[bool] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    mouse_movements: Optional[int] = None
    touch_support: Optional[bool] = None
    user_agent: Optional[str] = None
    timezone_offset: Optional[int] = None
    cookies_enabled: Optional[bool] = None


# =============================================================================
# HTTP Request Bodies
# =============================================================================

class VerifyRequest(BaseModel):
    """Body of the challenge verification call."""
    token: str = Field("", description="Challenge token issued at the gate")
    signals: Dict[str, Any] = Field(
        default_factory=dict,
        description="Raw browser signals; validated into ChallengeSignals later"
    )
