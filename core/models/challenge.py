"""
Gate Challenge Signal Scorer

Scores self-reported browser telemetry for automation fingerprints.
Penalties are additive and order-independent. Signals the client did
not report are skipped.
"""

import re

from core.models.scoring import clamp_score
from core.rules import RuleConfig
from core.schemas.inputs import ChallengeSignals


MOBILE_UA_PATTERN = re.compile(r"(Mobile|Android|iPhone|iPad)", re.IGNORECASE)


def challenge_score(signals: ChallengeSignals, rules: RuleConfig) -> int:
    """
    Bounded [0, 100] challenge score.

    Without `challenge_rules` the rule set is bypassed and the fixed
    `challenge_bonus` is returned instead.
    """
    challenge_rules = rules.challenge_rules
    if challenge_rules is None:
        return clamp_score(rules.challenge_bonus)

    total = 0.0

    if signals.webdriver is True:
        total += challenge_rules.webdriver_penalty

    if signals.screen_width is not None and signals.screen_height is not None:
        screen_size = f"{signals.screen_width}x{signals.screen_height}"
        if screen_size in challenge_rules.bot_screen_sizes:
            total += challenge_rules.bot_screen_penalty

    if signals.mouse_movements is not None and signals.mouse_movements < 1:
        total += challenge_rules.no_mouse_penalty

    # Mobile UA without touch support
    if signals.touch_support is not None and signals.user_agent is not None:
        if MOBILE_UA_PATTERN.search(signals.user_agent) and not signals.touch_support:
            total += challenge_rules.touch_mismatch_penalty

    if signals.timezone_offset is not None and rules.expected_timezones is not None:
        if signals.timezone_offset not in rules.expected_timezones:
            total += challenge_rules.timezone_penalty

    if signals.cookies_enabled is not None and not signals.cookies_enabled:
        total += challenge_rules.no_cookies_penalty

    return clamp_score(total)
