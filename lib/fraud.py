"""
Fraud heuristics over click batches.

Everything here is pure: callers pass the clicks and the thresholds, and
get back findings. Findings are turned into FraudSignal rows for manual
review; they never block an event.
"""
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from lib.models import Event

REASON_VELOCITY = "click_velocity"
REASON_SAME_IP = "same_ip"
REASON_BOT = "bot_user_agent"

BOT_MARKERS = ('bot', 'crawler', 'spider', 'scraper', 'curl', 'wget')

# Score contribution per triggered rule, capped at 100
RULE_WEIGHTS = {
    REASON_VELOCITY: 40,
    REASON_SAME_IP: 40,
    REASON_BOT: 50,
}


@dataclass(frozen=True)
class FraudThresholds:
    velocity_per_hour: float = 50.0
    same_ip_clicks: int = 10
    window_minutes: int = 60

    @classmethod
    def from_settings(cls, settings) -> "FraudThresholds":
        return cls(
            velocity_per_hour=settings.fraud_velocity_threshold,
            same_ip_clicks=settings.fraud_same_ip_threshold,
            window_minutes=settings.fraud_window_minutes,
        )

    @property
    def window_hours(self) -> float:
        return self.window_minutes / 60


@dataclass
class FraudFinding:
    """Suspicious click with the rules it tripped"""
    event: Event
    reasons: List[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return min(100, sum(RULE_WEIGHTS.get(r, 0) for r in self.reasons))


def clicks_per_hour(click_count: int, window_hours: float) -> float:
    if window_hours <= 0:
        raise ValueError("window_hours must be positive")
    return click_count / window_hours


def is_velocity_suspicious(click_count: int, window_hours: float, threshold: float = 50.0) -> bool:
    """More than `threshold` clicks per hour on average is suspicious"""
    return clicks_per_hour(click_count, window_hours) > threshold


def ip_click_counts(clicks: Iterable[Event]) -> Dict[Optional[str], int]:
    return Counter(click.ip_hash for click in clicks)


def has_same_ip_burst(clicks: Iterable[Event], threshold: int = 10) -> bool:
    """True when a single IP produced more than `threshold` clicks"""
    return any(
        count > threshold
        for ip, count in ip_click_counts(clicks).items()
        if ip is not None
    )


def is_bot_user_agent(user_agent: Optional[str]) -> bool:
    ua = (user_agent or "").lower()
    return any(marker in ua for marker in BOT_MARKERS)


def score_link_clicks(clicks: Sequence[Event], thresholds: FraudThresholds) -> List[FraudFinding]:
    """
    Apply every rule to the clicks of one link within the observation window.
    Returns one finding per click that tripped at least one rule.
    """
    findings: Dict[UUID, FraudFinding] = {}

    def flag(click: Event, reason: str):
        finding = findings.setdefault(click.id, FraudFinding(event=click))
        if reason not in finding.reasons:
            finding.reasons.append(reason)

    if clicks and is_velocity_suspicious(len(clicks), thresholds.window_hours, thresholds.velocity_per_hour):
        for click in clicks:
            flag(click, REASON_VELOCITY)

    for ip, count in ip_click_counts(clicks).items():
        if ip is None or count <= thresholds.same_ip_clicks:
            continue
        for click in clicks:
            if click.ip_hash == ip:
                flag(click, REASON_SAME_IP)

    for click in clicks:
        if is_bot_user_agent(click.user_agent):
            flag(click, REASON_BOT)

    return list(findings.values())


def score_clicks(clicks: Iterable[Event], thresholds: FraudThresholds) -> List[FraudFinding]:
    """Group clicks by referral link and score each group"""
    by_link: Dict[Optional[UUID], List[Event]] = defaultdict(list)
    for click in clicks:
        by_link[click.referral_link_id].append(click)

    findings: List[FraudFinding] = []
    for link_clicks in by_link.values():
        findings.extend(score_link_clicks(link_clicks, thresholds))
    return findings
