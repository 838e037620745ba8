"""Fraud review endpoints: scan recent clicks, list and triage signals"""
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.dependencies import get_current_org_id, get_fraud_scanner, get_store
from lib.attribution import FraudScanner
from lib.errors import NotFound
from lib.models import FraudSignalStatus, PAGE_LIMIT_MAX, pagination
from lib.store import ReferralStore

router = APIRouter(prefix="/api/fraud", tags=["fraud"])


class ScanRequest(BaseModel):
    campaign_id: UUID
    referral_link_id: Optional[UUID] = None


class UpdateSignalRequest(BaseModel):
    status: FraudSignalStatus


@router.post("/scan")
async def scan_clicks(
    body: ScanRequest,
    org_id: UUID = Depends(get_current_org_id),
    scanner: FraudScanner = Depends(get_fraud_scanner)
):
    """
    Score the campaign's clicks inside the review window.
    Signals are advisory; nothing here blocks traffic.
    """
    signals = await scanner.scan(
        org_id,
        body.campaign_id,
        referral_link_id=body.referral_link_id,
        now=datetime.now(timezone.utc)
    )
    return {
        "signals": [s.model_dump(mode="json") for s in signals],
        "flagged": len(signals),
        "window_minutes": scanner.thresholds.window_minutes,
    }


@router.get("/signals")
async def list_signals(
    status: Optional[FraudSignalStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=PAGE_LIMIT_MAX),
    org_id: UUID = Depends(get_current_org_id),
    store: ReferralStore = Depends(get_store)
):
    signals, total = await store.list_fraud_signals(
        org_id, {"status": status}, (page - 1) * limit, limit
    )
    return {
        "signals": [s.model_dump(mode="json") for s in signals],
        "pagination": pagination(page, limit, total)
    }


@router.patch("/signals/{signal_id}")
async def update_signal(
    signal_id: UUID,
    body: UpdateSignalRequest,
    org_id: UUID = Depends(get_current_org_id),
    store: ReferralStore = Depends(get_store)
):
    signal = await store.update_fraud_signal_status(org_id, signal_id, body.status)
    if signal is None:
        raise NotFound("Fraud signal not found")
    return {"signal": signal.model_dump(mode="json")}
