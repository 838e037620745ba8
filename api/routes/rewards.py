"""Reward issuance and listing"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.dependencies import get_current_org_id, get_reward_calculator, get_store
from lib.attribution import RewardCalculator
from lib.models import PAGE_LIMIT_MAX, RewardStatus, RewardType, pagination
from lib.store import ReferralStore

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


class CreateRewardRequest(BaseModel):
    """Reward for a confirmed conversion"""
    conversion_id: UUID
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    reward_type: RewardType = RewardType.CASH
    payout_method: str = "manual"
    payout_details: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


@router.post("", status_code=201)
async def create_reward(
    body: CreateRewardRequest,
    org_id: UUID = Depends(get_current_org_id),
    calculator: RewardCalculator = Depends(get_reward_calculator)
):
    reward = await calculator.issue(
        org_id,
        body.conversion_id,
        body.amount,
        currency=body.currency,
        reward_type=body.reward_type,
        payout_method=body.payout_method,
        payout_details=body.payout_details,
        notes=body.notes
    )
    return {"reward": reward.model_dump(mode="json")}


@router.get("/suggestion")
async def suggest_reward(
    conversion_id: UUID = Query(...),
    org_id: UUID = Depends(get_current_org_id),
    calculator: RewardCalculator = Depends(get_reward_calculator)
):
    """Amount the campaign's reward policy would pay for a confirmed conversion"""
    amount = await calculator.suggest(org_id, conversion_id)
    return {"conversion_id": str(conversion_id), "amount": str(amount)}


@router.get("")
async def list_rewards(
    campaign_id: Optional[UUID] = Query(None),
    participant_id: Optional[UUID] = Query(None),
    status: Optional[RewardStatus] = Query(None),
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
    rewards, total = await store.list_rewards(org_id, filters, (page - 1) * limit, limit)
    return {
        "rewards": [r.model_dump(mode="json") for r in rewards],
        "pagination": pagination(page, limit, total)
    }
