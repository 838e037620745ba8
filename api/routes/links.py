"""Referral link generation and stats endpoints"""
from typing import Dict, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.dependencies import get_conversion_matcher, get_current_org_id, get_settings, get_store
from lib.attribution import ConversionMatcher
from lib.errors import Conflict, NotFound
from lib.logging import get_logger
from lib.models import ReferralLink
from lib.settings import Settings
from lib.store import ReferralStore
from lib.tracking import UTM_KEYS, generate_short_code

router = APIRouter(prefix="/api/links", tags=["links"])
logger = get_logger(__name__)

MAX_CODE_ATTEMPTS = 5


class CreateLinkRequest(BaseModel):
    """Request to create a referral link for a participant"""
    campaign_id: UUID
    participant_id: Optional[UUID] = None
    utm: Dict[str, str] = Field(default_factory=dict)


def _short_url(settings: Settings, code: str) -> str:
    return f"{settings.base_url.rstrip('/')}/r/{code}"


@router.post("", status_code=201)
async def create_link(
    body: CreateLinkRequest,
    org_id: UUID = Depends(get_current_org_id),
    matcher: ConversionMatcher = Depends(get_conversion_matcher),
    store: ReferralStore = Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    """Create a referral link with a fresh short code"""
    campaign, _, participant_id = await matcher.attribute(
        org_id, body.campaign_id, participant_id=body.participant_id
    )
    utm = {k: v for k, v in body.utm.items() if k in UTM_KEYS and v}

    # Codes are random; the unique index on code decides collisions
    link = None
    for _ in range(MAX_CODE_ATTEMPTS):
        candidate = ReferralLink(
            id=uuid4(),
            campaign_id=campaign.id,
            participant_id=participant_id,
            code=generate_short_code(),
            utm=utm
        )
        try:
            link = await store.create_link(candidate)
            break
        except Conflict:
            logger.info(f"Short code collision on {candidate.code}, retrying")

    if link is None:
        raise Conflict("Could not generate unique code")

    data = link.model_dump(mode="json")
    data["short_url"] = _short_url(settings, link.code)
    return {"link": data}


@router.get("/{code}/stats")
async def link_stats(
    code: str,
    org_id: UUID = Depends(get_current_org_id),
    store: ReferralStore = Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    """Click and conversion counters for one of the caller's links"""
    link = await store.get_org_link_by_code(org_id, code)
    if link is None:
        raise NotFound("Referral link not found")

    rate = round(link.conversions_count / link.clicks_count, 4) if link.clicks_count else 0.0
    return {
        "code": link.code,
        "short_url": _short_url(settings, link.code),
        "campaign_id": str(link.campaign_id),
        "participant_id": str(link.participant_id) if link.participant_id else None,
        "clicks": link.clicks_count,
        "conversions": link.conversions_count,
        "conversion_rate": rate,
    }
