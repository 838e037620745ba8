"""
Referral attribution pipeline:
link resolution -> click recording -> conversion matching -> rewards -> fraud scan
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional
from uuid import UUID

from lib import prometheus_metrics as prom
from lib.errors import CampaignInactive, Conflict, InvalidInput, InvalidState, NotFound
from lib.fraud import FraudThresholds, score_clicks
from lib.logging import get_logger
from lib.models import (
    Campaign,
    Conversion,
    ConversionReport,
    ConversionStatus,
    Event,
    EventType,
    FraudSignal,
    ReferralLink,
    ResolvedLink,
    Reward,
    RewardType,
)
from lib.redis_client import RedisClient
from lib.store import ReferralStore
from lib.tracking import MAX_HEADER_LENGTH, hash_ip, parse_user_agent

logger = get_logger(__name__)

CACHE_PREFIX = "link:"
CENTS = Decimal("0.01")


class LinkResolver:
    """Maps a short code to its link and campaign, gated on campaign status"""

    def __init__(self, store: ReferralStore, cache: Optional[RedisClient] = None, cache_ttl: int = 60):
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def _lookup(self, code: str) -> Optional[ResolvedLink]:
        cache_key = f"{CACHE_PREFIX}{code}"

        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached:
                prom.link_cache_hits_total.inc()
                return ResolvedLink.model_validate(cached)
            prom.link_cache_misses_total.inc()

        resolved = await self.store.get_link_by_code(code)

        if resolved is not None and self.cache is not None:
            await self.cache.set(cache_key, resolved.model_dump(mode="json"), ttl=self.cache_ttl)
        return resolved

    async def resolve(self, code: str) -> ResolvedLink:
        resolved = await self._lookup(code)
        if resolved is None:
            raise NotFound("Referral link not found")
        if not resolved.campaign.is_active:
            raise CampaignInactive()
        return resolved


@dataclass
class Visit:
    """Request details captured when a referral link is followed"""
    ip: Optional[str] = None
    user_agent: str = ""
    referrer: str = ""
    utm_params: Dict[str, str] = field(default_factory=dict)


class ClickRecorder:
    """Appends click events and bumps link click counters"""

    def __init__(self, store: ReferralStore, ip_hash_salt: str):
        self.store = store
        self.ip_hash_salt = ip_hash_salt

    def build_event(self, resolved: ResolvedLink, visit: Visit) -> Event:
        link = resolved.link
        return Event(
            org_id=resolved.campaign.org_id,
            campaign_id=resolved.campaign.id,
            participant_id=link.participant_id,
            referral_link_id=link.id,
            event_type=EventType.CLICK,
            metadata={"code": link.code, "utm": link.utm, **parse_user_agent(visit.user_agent)},
            ip_hash=hash_ip(visit.ip, self.ip_hash_salt) if visit.ip else None,
            user_agent=visit.user_agent[:MAX_HEADER_LENGTH],
            referrer=visit.referrer[:MAX_HEADER_LENGTH],
            utm_params=visit.utm_params,
        )

    async def record(self, resolved: ResolvedLink, visit: Visit) -> Event:
        event = await self.store.record_click(self.build_event(resolved, visit))
        prom.clicks_recorded_total.inc()
        return event

    async def record_safely(self, resolved: ResolvedLink, visit: Visit) -> Optional[Event]:
        """Best-effort recording; failures are logged and dropped"""
        try:
            return await self.record(resolved, visit)
        except Exception:
            prom.click_record_failures_total.inc()
            logger.exception(f"Failed to record click for code {resolved.link.code}")
            return None


class ConversionMatcher:
    """Validates and attributes reported conversions"""

    def __init__(self, store: ReferralStore):
        self.store = store

    async def active_campaign(self, org_id: UUID, campaign_id: UUID) -> Campaign:
        campaign = await self.store.get_campaign(org_id, campaign_id)
        if campaign is None:
            raise NotFound("Campaign not found")
        if not campaign.is_active:
            raise CampaignInactive()
        return campaign

    async def attribute(
        self,
        org_id: UUID,
        campaign_id: UUID,
        participant_id: Optional[UUID] = None,
        referral_link_id: Optional[UUID] = None,
        ref_code: Optional[str] = None,
        cookie_code: Optional[str] = None,
    ) -> tuple:
        """
        Resolve the link and participant a report is credited to.
        Returns (campaign, link or None, participant_id or None).

        An explicit referral_link_id or ref_code must belong to the campaign.
        A cookie_code is only a hint: when it names a link outside the
        campaign the report is left unattributed.
        """
        campaign = await self.active_campaign(org_id, campaign_id)

        link: Optional[ReferralLink] = None
        if referral_link_id is not None:
            link = await self.store.get_link(campaign_id, referral_link_id)
            if link is None:
                raise NotFound("Referral link not found or not associated with campaign")
        elif ref_code:
            link = await self.store.get_campaign_link_by_code(campaign_id, ref_code)
            if link is None:
                raise NotFound("Referral link not found or not associated with campaign")
        elif cookie_code:
            link = await self.store.get_campaign_link_by_code(campaign_id, cookie_code)
            if link is None:
                logger.info(f"Ignoring ref_code cookie {cookie_code} outside campaign {campaign_id}")

        if participant_id is None and link is not None:
            participant_id = link.participant_id
        elif participant_id is not None:
            participant = await self.store.get_participant(org_id, campaign_id, participant_id)
            if participant is None:
                raise NotFound("Participant not found or not associated with campaign")

        return campaign, link, participant_id

    async def record_event(
        self,
        org_id: UUID,
        campaign_id: UUID,
        event_type: EventType,
        participant_id: Optional[UUID] = None,
        referral_link_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
        utm_params: Optional[Dict[str, str]] = None,
        user_agent: Optional[str] = None,
        ip_hash: Optional[str] = None,
    ) -> Event:
        """Store an API-reported event after the same ownership checks"""
        campaign, link, participant_id = await self.attribute(
            org_id, campaign_id, participant_id, referral_link_id
        )
        event = Event(
            org_id=campaign.org_id,
            campaign_id=campaign.id,
            participant_id=participant_id,
            referral_link_id=link.id if link else None,
            event_type=event_type,
            metadata=metadata or {},
            utm_params=utm_params or {},
            user_agent=user_agent[:MAX_HEADER_LENGTH] if user_agent else None,
            ip_hash=ip_hash,
        )
        return await self.store.insert_event(event)

    async def match(
        self, org_id: UUID, report: ConversionReport, cookie_code: Optional[str] = None
    ) -> Conversion:
        campaign, link, participant_id = await self.attribute(
            org_id,
            report.campaign_id,
            report.participant_id,
            report.referral_link_id,
            report.ref_code,
            cookie_code,
        )

        conversion = Conversion(
            org_id=campaign.org_id,
            campaign_id=campaign.id,
            participant_id=participant_id,
            referral_link_id=link.id if link else None,
            conversion_type=report.conversion_type,
            conversion_value=report.conversion_value,
            conversion_currency=report.conversion_currency.upper(),
            customer_email=report.customer_email,
            customer_name=report.customer_name,
            order_id=report.order_id,
            metadata=report.metadata,
            status=ConversionStatus.PENDING,
        )

        try:
            stored = await self.store.create_conversion(conversion)
        except Conflict:
            prom.conversions_total.labels(
                conversion_type=report.conversion_type.value, result="duplicate"
            ).inc()
            raise

        prom.conversions_total.labels(
            conversion_type=report.conversion_type.value, result="created"
        ).inc()
        logger.info(
            f"conversion={stored.id} campaign={campaign.id} "
            f"type={stored.conversion_type.value} link={stored.referral_link_id}"
        )
        return stored


def suggest_reward_amount(campaign: Campaign, conversion: Conversion) -> Decimal:
    """Amount the campaign's reward policy pays for a conversion"""
    policy = campaign.reward_policy
    if policy.type == "percent":
        amount = conversion.conversion_value * policy.value / Decimal(100)
    else:
        amount = policy.value
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class RewardCalculator:
    """Creates pending rewards for confirmed conversions"""

    def __init__(self, store: ReferralStore):
        self.store = store

    async def _confirmed_conversion(self, org_id: UUID, conversion_id: UUID) -> Conversion:
        conversion = await self.store.get_conversion(org_id, conversion_id)
        if conversion is None:
            raise NotFound("Conversion not found")
        if conversion.status != ConversionStatus.CONFIRMED:
            raise InvalidState("Conversion must be confirmed before creating reward")
        return conversion

    async def suggest(self, org_id: UUID, conversion_id: UUID) -> Decimal:
        conversion = await self._confirmed_conversion(org_id, conversion_id)
        campaign = await self.store.get_campaign(org_id, conversion.campaign_id)
        if campaign is None:
            raise NotFound("Campaign not found")
        return suggest_reward_amount(campaign, conversion)

    async def issue(
        self,
        org_id: UUID,
        conversion_id: UUID,
        amount: Decimal,
        currency: Optional[str] = None,
        reward_type: RewardType = RewardType.CASH,
        payout_method: str = "manual",
        payout_details: Optional[dict] = None,
        notes: Optional[str] = None,
    ) -> Reward:
        if amount is None or amount <= 0:
            raise InvalidInput("Amount must be greater than 0")

        conversion = await self._confirmed_conversion(org_id, conversion_id)

        if currency is None:
            campaign = await self.store.get_campaign(org_id, conversion.campaign_id)
            currency = campaign.reward_policy.currency if campaign else "USD"

        reward = Reward(
            org_id=org_id,
            campaign_id=conversion.campaign_id,
            participant_id=conversion.participant_id,
            conversion_id=conversion.id,
            amount=amount,
            currency=currency.upper(),
            reward_type=reward_type,
            payout_method=payout_method,
            payout_details=payout_details or {},
            notes=notes,
        )
        stored = await self.store.create_reward(reward)

        prom.rewards_total.labels(currency=stored.currency).inc()
        logger.info(f"reward={stored.id} conversion={conversion.id} amount={stored.amount}")
        return stored


class FraudScanner:
    """Scores recent clicks and persists signals for review"""

    def __init__(self, store: ReferralStore, thresholds: FraudThresholds):
        self.store = store
        self.thresholds = thresholds

    async def scan(
        self,
        org_id: UUID,
        campaign_id: UUID,
        referral_link_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> List[FraudSignal]:
        campaign = await self.store.get_campaign(org_id, campaign_id)
        if campaign is None:
            raise NotFound("Campaign not found")

        now = now or datetime.now(timezone.utc)
        since = now - timedelta(minutes=self.thresholds.window_minutes)
        clicks = await self.store.get_click_events(org_id, campaign_id, since, referral_link_id)

        signals: List[FraudSignal] = []
        for finding in score_clicks(clicks, self.thresholds):
            signal = await self.store.create_fraud_signal(FraudSignal(
                org_id=org_id,
                event_id=finding.event.id,
                score=finding.score,
                reasons=finding.reasons,
            ))
            if signal is None:
                # already flagged by an earlier scan
                continue
            for reason in signal.reasons:
                prom.fraud_signals_total.labels(reason=reason).inc()
            signals.append(signal)

        if signals:
            logger.warning(
                f"Fraud scan flagged {len(signals)} of {len(clicks)} clicks "
                f"for campaign {campaign_id}"
            )
        return signals
