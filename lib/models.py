"""
Domain models for campaigns, referral links, events, conversions,
rewards and fraud signals
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class EventType(str, Enum):
    CLICK = "click"
    CONVERSION = "conversion"
    SIGNUP = "signup"
    PURCHASE = "purchase"
    DOWNLOAD = "download"


class ConversionType(str, Enum):
    SIGNUP = "signup"
    PURCHASE = "purchase"
    DOWNLOAD = "download"
    TRIAL = "trial"
    SUBSCRIPTION = "subscription"


class ConversionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class RewardStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    VOID = "void"


class RewardType(str, Enum):
    CASH = "cash"
    CREDIT = "credit"
    GIFT = "gift"
    DISCOUNT = "discount"


class FraudSignalStatus(str, Enum):
    OPEN = "open"
    IGNORED = "ignored"
    BLOCKED = "blocked"
    RESOLVED = "resolved"


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Trim and lower-case an email; blank becomes None"""
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


class RewardPolicy(BaseModel):
    """How a campaign pays participants: fixed amount or percent of value"""
    type: str = "fixed"  # fixed | percent
    value: Decimal = Decimal("0")
    currency: str = "USD"


class Campaign(BaseModel):
    id: UUID
    org_id: UUID
    name: str = ""
    status: CampaignStatus
    landing_url: Optional[str] = None
    reward_policy: RewardPolicy = Field(default_factory=RewardPolicy)

    @property
    def is_active(self) -> bool:
        return self.status == CampaignStatus.ACTIVE


class Participant(BaseModel):
    id: UUID
    org_id: UUID
    campaign_id: UUID
    name: Optional[str] = None
    email: Optional[str] = None


class ReferralLink(BaseModel):
    id: UUID
    campaign_id: UUID
    participant_id: Optional[UUID] = None
    code: str
    utm: Dict[str, str] = Field(default_factory=dict)
    clicks_count: int = 0
    conversions_count: int = 0
    created_at: Optional[datetime] = None


class ResolvedLink(BaseModel):
    """A referral link together with the campaign it routes to"""
    link: ReferralLink
    campaign: Campaign


class Event(BaseModel):
    id: Optional[UUID] = None
    org_id: UUID
    campaign_id: UUID
    participant_id: Optional[UUID] = None
    referral_link_id: Optional[UUID] = None
    event_type: EventType
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ip_hash: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    utm_params: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class Conversion(BaseModel):
    id: Optional[UUID] = None
    org_id: UUID
    campaign_id: UUID
    participant_id: Optional[UUID] = None
    referral_link_id: Optional[UUID] = None
    conversion_type: ConversionType
    conversion_value: Decimal = Decimal("0")
    conversion_currency: str = "USD"
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    order_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: ConversionStatus = ConversionStatus.PENDING
    created_at: Optional[datetime] = None

    @field_validator("customer_email")
    @classmethod
    def _normalize_email(cls, v):
        return normalize_email(v)


class Reward(BaseModel):
    id: Optional[UUID] = None
    org_id: UUID
    campaign_id: UUID
    participant_id: Optional[UUID] = None
    conversion_id: UUID
    amount: Decimal
    currency: str = "USD"
    reward_type: RewardType = RewardType.CASH
    payout_method: str = "manual"
    payout_details: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    status: RewardStatus = RewardStatus.PENDING
    created_at: Optional[datetime] = None


class FraudSignal(BaseModel):
    id: Optional[UUID] = None
    org_id: UUID
    event_id: UUID
    score: int
    reasons: List[str] = Field(default_factory=list)
    status: FraudSignalStatus = FraudSignalStatus.OPEN
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ConversionReport(BaseModel):
    """A conversion as reported by an API caller or a webhook"""
    campaign_id: UUID
    conversion_type: ConversionType
    participant_id: Optional[UUID] = None
    referral_link_id: Optional[UUID] = None
    ref_code: Optional[str] = None
    conversion_value: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    conversion_currency: str = Field(default="USD", min_length=3, max_length=3)
    customer_email: Optional[str] = Field(default=None, pattern=r"^\s*[^\s@]+@[^\s@]+\.[^\s@]+\s*$")
    customer_name: Optional[str] = None
    order_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer_email")
    @classmethod
    def _normalize_email(cls, v):
        return normalize_email(v)


PAGE_LIMIT_MAX = 100


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    """Pagination envelope returned by list endpoints"""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": -(-total // limit) if limit else 0,
    }
