"""
Gate Rule Configuration

Weight tables consumed by the scoring engine and the challenge scorer.

Rules are loaded from a JSON file into an immutable snapshot. A
malformed file raises ConfigurationError at load time; request-time
evaluation never validates configuration. RuleStore.reload() builds a
fresh snapshot and swaps the reference, so in-flight evaluations keep
reading the snapshot they started with.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class ConfigurationError(Exception):
    """Raised when the rule configuration is missing or malformed."""
    pass


# =============================================================================
# Rule Sections
# =============================================================================

class TimeBasedScoring(BaseModel):
    """Penalty for requests arriving during suspicious wall-clock hours."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    enabled: bool = False
    suspicious_hours: Tuple[int, ...] = ()
    weight: float = 10


class ChallengeRules(BaseModel):
    """Penalties applied to client-reported challenge telemetry."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    webdriver_penalty: float = 30
    bot_screen_sizes: Tuple[str, ...] = ("1024x768", "800x600", "1280x1024")
    bot_screen_penalty: float = 20
    no_mouse_penalty: float = 25
    touch_mismatch_penalty: float = 15
    timezone_penalty: float = 10
    no_cookies_penalty: float = 15


class DecisionThresholds(BaseModel):
    """Score cut-offs; deny must sit strictly above challenge."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    deny: float = 80
    challenge: float = 40

    @model_validator(mode="after")
    def _check_order(self) -> "DecisionThresholds":
        if self.challenge < 0:
            raise ValueError("challenge threshold must be >= 0")
        if self.deny <= self.challenge:
            raise ValueError("deny threshold must be greater than challenge threshold")
        return self


# =============================================================================
# Rule Configuration (Root Model)
# =============================================================================

class RuleConfig(BaseModel):
    """
    Immutable snapshot of every scoring weight.

    Optional weights left unset contribute nothing. The UA pattern table
    keeps the order of the source file; the first matching pattern wins.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True, allow_inf_nan=False)

    country_blocklist: Dict[str, float] = Field(default_factory=dict)

    ipqs_vpn_weight: Optional[float] = None
    ipqs_proxy_weight: Optional[float] = None
    ipqs_tor_weight: Optional[float] = None
    ipqs_bot_weight: Optional[float] = None
    ipqs_abuse_weight: Optional[float] = None
    ipqs_fraud_multiplier: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("ipqs_fraud_multiplier", "fraud_multiplier"),
    )

    asn_suspicious: Dict[str, float] = Field(default_factory=dict)
    ua_bot_patterns: Dict[str, float] = Field(default_factory=dict)
    time_based_scoring: Optional[TimeBasedScoring] = None
    rate_limit_penalty: float = 50

    challenge_rules: Optional[ChallengeRules] = None
    challenge_bonus: float = 20
    expected_timezones: Optional[Tuple[int, ...]] = None

    decision_thresholds: DecisionThresholds = Field(default_factory=DecisionThresholds)


def parse_rules(data: object) -> RuleConfig:
    """Validate a decoded rules document."""
    if not isinstance(data, dict) or not data:
        raise ConfigurationError("Invalid scoring rules: expected a non-empty JSON object")
    try:
        return RuleConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid scoring rules: {e}") from e


def load_rules(path: Union[str, Path]) -> RuleConfig:
    """Load and validate the rules file at `path`."""
    rules_path = Path(path)
    if not rules_path.is_file():
        raise ConfigurationError(f"Scoring rules file not found: {rules_path}")

    try:
        data = json.loads(rules_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid scoring rules JSON in {rules_path}: {e}") from e

    rules = parse_rules(data)
    logger.info(
        f"Loaded scoring rules from {rules_path} "
        f"({len(rules.country_blocklist)} countries, {len(rules.ua_bot_patterns)} UA patterns)"
    )
    return rules


# =============================================================================
# Rule Store
# =============================================================================

class RuleStore:
    """
    Holds the current rule snapshot.

    Readers take `store.current` once per evaluation. reload() replaces the
    reference only after the new file validated; a failed reload leaves the
    previous snapshot in place and re-raises.
    """

    def __init__(self, path: Union[str, Path], rules: Optional[RuleConfig] = None) -> None:
        self.path = Path(path)
        self._reload_lock = threading.Lock()
        self._current: RuleConfig = rules if rules is not None else load_rules(self.path)

    @classmethod
    def from_rules(cls, rules: RuleConfig) -> RuleStore:
        """Wrap an in-memory snapshot (no backing file)."""
        return cls(path="<memory>", rules=rules)

    @property
    def current(self) -> RuleConfig:
        return self._current

    def reload(self) -> RuleConfig:
        with self._reload_lock:
            try:
                rules = load_rules(self.path)
            except ConfigurationError as e:
                logger.error(f"Rule reload failed, keeping previous snapshot: {e}")
                raise
            self._current = rules
            return rules
