"""
FastAPI dependencies - hand the clients built by the app factory to handlers
"""
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, Request

from lib.attribution import (
    ClickRecorder,
    ConversionMatcher,
    FraudScanner,
    LinkResolver,
    RewardCalculator,
)
from lib.auth import IdentityProvider
from lib.fraud import FraudThresholds
from lib.redis_client import RedisClient
from lib.settings import Settings
from lib.store import ReferralStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ReferralStore:
    return request.app.state.store


def get_cache(request: Request) -> Optional[RedisClient]:
    return request.app.state.cache


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


async def get_current_org_id(
    identity: IdentityProvider = Depends(get_identity),
    authorization: Optional[str] = Header(None)
) -> UUID:
    """Authenticated caller's primary organization"""
    user_id = identity.authenticate(authorization)
    return await identity.primary_org(user_id)


def get_link_resolver(
    store: ReferralStore = Depends(get_store),
    cache: Optional[RedisClient] = Depends(get_cache),
    settings: Settings = Depends(get_settings)
) -> LinkResolver:
    return LinkResolver(store, cache, cache_ttl=settings.link_cache_ttl_seconds)


def get_click_recorder(
    store: ReferralStore = Depends(get_store),
    settings: Settings = Depends(get_settings)
) -> ClickRecorder:
    return ClickRecorder(store, ip_hash_salt=settings.ip_hash_salt)


def get_conversion_matcher(store: ReferralStore = Depends(get_store)) -> ConversionMatcher:
    return ConversionMatcher(store)


def get_reward_calculator(store: ReferralStore = Depends(get_store)) -> RewardCalculator:
    return RewardCalculator(store)


def get_fraud_scanner(
    store: ReferralStore = Depends(get_store),
    settings: Settings = Depends(get_settings)
) -> FraudScanner:
    return FraudScanner(store, FraudThresholds.from_settings(settings))
