"""Conversion reporting and listing"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_conversion_matcher, get_current_org_id, get_settings, get_store
from lib.attribution import ConversionMatcher
from lib.models import ConversionReport, ConversionStatus, PAGE_LIMIT_MAX, pagination
from lib.settings import Settings
from lib.store import ReferralStore

router = APIRouter(prefix="/api/conversions", tags=["conversions"])


@router.post("", status_code=201)
async def create_conversion(
    report: ConversionReport,
    request: Request,
    org_id: UUID = Depends(get_current_org_id),
    matcher: ConversionMatcher = Depends(get_conversion_matcher),
    settings: Settings = Depends(get_settings)
):
    """
    Record a conversion. Attribution comes from referral_link_id, else
    ref_code, else the visitor's attribution cookie when the call carries it.
    """
    cookie_code = request.cookies.get(settings.attribution_cookie_name)
    conversion = await matcher.match(org_id, report, cookie_code=cookie_code)
    return {"conversion": conversion.model_dump(mode="json")}


@router.get("")
async def list_conversions(
    campaign_id: Optional[UUID] = Query(None),
    participant_id: Optional[UUID] = Query(None),
    status: Optional[ConversionStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=PAGE_LIMIT_MAX),
    org_id: UUID = Depends(get_current_org_id),
    store: ReferralStore = Depends(get_store)
):
    filters = {
        "campaign_id": campaign_id,
        "participant_id": participant_id,
        "status": status,
        "start_date": start_date,
        "end_date": end_date,
    }
    conversions, total = await store.list_conversions(org_id, filters, (page - 1) * limit, limit)
    return {
        "conversions": [c.model_dump(mode="json") for c in conversions],
        "pagination": pagination(page, limit, total)
    }
