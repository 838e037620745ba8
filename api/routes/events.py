"""Event ingestion and listing"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from api.dependencies import get_conversion_matcher, get_current_org_id, get_settings, get_store
from lib.attribution import ConversionMatcher
from lib.models import EventType, PAGE_LIMIT_MAX, pagination
from lib.settings import Settings
from lib.store import ReferralStore
from lib.tracking import hash_ip

router = APIRouter(prefix="/api/events", tags=["events"])


class CreateEventRequest(BaseModel):
    """Event reported by an integration"""
    campaign_id: UUID
    event_type: EventType
    participant_id: Optional[UUID] = None
    referral_link_id: Optional[UUID] = None
    metadata: Optional[Dict[str, Any]] = None
    utm_params: Optional[Dict[str, str]] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@router.post("", status_code=201)
async def create_event(
    body: CreateEventRequest,
    request: Request,
    org_id: UUID = Depends(get_current_org_id),
    matcher: ConversionMatcher = Depends(get_conversion_matcher),
    settings: Settings = Depends(get_settings)
):
    ip_address = body.ip_address or (request.client.host if request.client else None)
    event = await matcher.record_event(
        org_id,
        body.campaign_id,
        body.event_type,
        participant_id=body.participant_id,
        referral_link_id=body.referral_link_id,
        metadata=body.metadata,
        utm_params=body.utm_params,
        user_agent=body.user_agent or request.headers.get("user-agent"),
        ip_hash=hash_ip(ip_address, settings.ip_hash_salt) if ip_address else None
    )
    return {"event": event.model_dump(mode="json")}


@router.get("")
async def list_events(
    campaign_id: Optional[UUID] = Query(None),
    participant_id: Optional[UUID] = Query(None),
    event_type: Optional[EventType] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=PAGE_LIMIT_MAX),
    org_id: UUID = Depends(get_current_org_id),
    store: ReferralStore = Depends(get_store)
):
    filters = {
        "campaign_id": campaign_id,
        "participant_id": participant_id,
        "event_type": event_type,
        "start_date": start_date,
        "end_date": end_date,
    }
    events, total = await store.list_events(org_id, filters, (page - 1) * limit, limit)
    return {
        "events": [e.model_dump(mode="json") for e in events],
        "pagination": pagination(page, limit, total)
    }
