"""
Storage layer - all SQL for the attribution pipeline

Uniqueness (link codes, one conversion per customer/type, one reward per
conversion) is enforced by indexes in sql/migrations; violations surface
here as Conflict.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import UUID

import asyncpg

from lib.db import Database
from lib.errors import Conflict, InvalidInput
from lib.models import (
    Campaign,
    Conversion,
    Event,
    EventType,
    FraudSignal,
    FraudSignalStatus,
    Participant,
    ReferralLink,
    ResolvedLink,
    Reward,
)


class ReferralStore(Protocol):
    """Operations the attribution pipeline needs from storage"""

    async def health_check(self) -> bool: ...
    async def get_primary_org_id(self, user_id: str) -> Optional[UUID]: ...
    async def get_link_by_code(self, code: str) -> Optional[ResolvedLink]: ...
    async def get_campaign(self, org_id: UUID, campaign_id: UUID) -> Optional[Campaign]: ...
    async def get_participant(self, org_id: UUID, campaign_id: UUID, participant_id: UUID) -> Optional[Participant]: ...
    async def get_link(self, campaign_id: UUID, link_id: UUID) -> Optional[ReferralLink]: ...
    async def get_campaign_link_by_code(self, campaign_id: UUID, code: str) -> Optional[ReferralLink]: ...
    async def get_org_link_by_code(self, org_id: UUID, code: str) -> Optional[ReferralLink]: ...
    async def create_link(self, link: ReferralLink) -> ReferralLink: ...
    async def record_click(self, event: Event) -> Event: ...
    async def insert_event(self, event: Event) -> Event: ...
    async def list_events(self, org_id: UUID, filters: Dict[str, Any], offset: int, limit: int) -> Tuple[List[Event], int]: ...
    async def get_click_events(self, org_id: UUID, campaign_id: UUID, since: datetime, link_id: Optional[UUID] = None) -> List[Event]: ...
    async def create_conversion(self, conversion: Conversion) -> Conversion: ...
    async def get_conversion(self, org_id: UUID, conversion_id: UUID) -> Optional[Conversion]: ...
    async def list_conversions(self, org_id: UUID, filters: Dict[str, Any], offset: int, limit: int) -> Tuple[List[Conversion], int]: ...
    async def create_reward(self, reward: Reward) -> Reward: ...
    async def list_rewards(self, org_id: UUID, filters: Dict[str, Any], offset: int, limit: int) -> Tuple[List[Reward], int]: ...
    async def create_fraud_signal(self, signal: FraudSignal) -> Optional[FraudSignal]: ...
    async def list_fraud_signals(self, org_id: UUID, filters: Dict[str, Any], offset: int, limit: int) -> Tuple[List[FraudSignal], int]: ...
    async def update_fraud_signal_status(self, org_id: UUID, signal_id: UUID, status: FraudSignalStatus) -> Optional[FraudSignal]: ...


# Filter keys accepted by list queries -> SQL predicate template
_LIST_FILTERS = {
    "campaign_id": "campaign_id = ${}",
    "participant_id": "participant_id = ${}",
    "event_type": "event_type = ${}",
    "status": "status = ${}",
    "start_date": "created_at >= ${}",
    "end_date": "created_at <= ${}",
}


def _build_where(org_id: UUID, filters: Dict[str, Any]) -> Tuple[str, list]:
    """Build a tenant-scoped WHERE clause from known filter keys"""
    clauses = ["org_id = $1"]
    args: list = [org_id]
    for key, template in _LIST_FILTERS.items():
        value = filters.get(key)
        if value is None:
            continue
        if hasattr(value, "value"):
            value = value.value
        args.append(value)
        clauses.append(template.format(len(args)))
    return " AND ".join(clauses), args


def _campaign_from_row(row) -> Campaign:
    return Campaign(
        id=row["campaign_id"],
        org_id=row["org_id"],
        name=row["campaign_name"],
        status=row["campaign_status"],
        landing_url=row["landing_url"],
        reward_policy=row["reward_policy"] or {},
    )


class PostgresStore:
    """ReferralStore backed by the asyncpg pool"""

    def __init__(self, db: Database):
        self.db = db

    async def health_check(self) -> bool:
        return await self.db.health_check()

    # ------------------------------------------------------------------
    # Tenancy
    # ------------------------------------------------------------------

    async def get_primary_org_id(self, user_id: str) -> Optional[UUID]:
        async with self.db.read() as conn:
            return await conn.fetchval("""
                SELECT org_id
                FROM org_members
                WHERE user_id = $1 AND status = 'active'
                ORDER BY created_at
                LIMIT 1
            """, user_id)

    # ------------------------------------------------------------------
    # Campaigns, participants, links
    # ------------------------------------------------------------------

    async def get_link_by_code(self, code: str) -> Optional[ResolvedLink]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT
                    rl.id, rl.campaign_id, rl.participant_id, rl.code, rl.utm,
                    rl.clicks_count, rl.conversions_count, rl.created_at,
                    c.org_id, c.name AS campaign_name, c.status AS campaign_status,
                    c.landing_url, c.reward_policy
                FROM referral_links rl
                JOIN campaigns c ON c.id = rl.campaign_id
                WHERE rl.code = $1
            """, code)

        if not row:
            return None

        link = ReferralLink(
            id=row["id"],
            campaign_id=row["campaign_id"],
            participant_id=row["participant_id"],
            code=row["code"],
            utm=row["utm"] or {},
            clicks_count=row["clicks_count"],
            conversions_count=row["conversions_count"],
            created_at=row["created_at"],
        )
        return ResolvedLink(link=link, campaign=_campaign_from_row(row))

    async def get_campaign(self, org_id: UUID, campaign_id: UUID) -> Optional[Campaign]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT id AS campaign_id, org_id, name AS campaign_name,
                       status AS campaign_status, landing_url, reward_policy
                FROM campaigns
                WHERE id = $1 AND org_id = $2
            """, campaign_id, org_id)
        return _campaign_from_row(row) if row else None

    async def get_participant(self, org_id: UUID, campaign_id: UUID, participant_id: UUID) -> Optional[Participant]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT id, org_id, campaign_id, name, email
                FROM participants
                WHERE id = $1 AND campaign_id = $2 AND org_id = $3
            """, participant_id, campaign_id, org_id)
        return Participant(**dict(row)) if row else None

    async def get_link(self, campaign_id: UUID, link_id: UUID) -> Optional[ReferralLink]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT id, campaign_id, participant_id, code, utm,
                       clicks_count, conversions_count, created_at
                FROM referral_links
                WHERE id = $1 AND campaign_id = $2
            """, link_id, campaign_id)
        return ReferralLink(**dict(row)) if row else None

    async def get_campaign_link_by_code(self, campaign_id: UUID, code: str) -> Optional[ReferralLink]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT id, campaign_id, participant_id, code, utm,
                       clicks_count, conversions_count, created_at
                FROM referral_links
                WHERE code = $1 AND campaign_id = $2
            """, code, campaign_id)
        return ReferralLink(**dict(row)) if row else None

    async def get_org_link_by_code(self, org_id: UUID, code: str) -> Optional[ReferralLink]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT rl.id, rl.campaign_id, rl.participant_id, rl.code, rl.utm,
                       rl.clicks_count, rl.conversions_count, rl.created_at
                FROM referral_links rl
                JOIN campaigns c ON c.id = rl.campaign_id
                WHERE rl.code = $1 AND c.org_id = $2
            """, code, org_id)
        return ReferralLink(**dict(row)) if row else None

    async def create_link(self, link: ReferralLink) -> ReferralLink:
        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO referral_links (campaign_id, participant_id, code, utm)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id, campaign_id, participant_id, code, utm,
                              clicks_count, conversions_count, created_at
                """, link.campaign_id, link.participant_id, link.code, link.utm)
        except asyncpg.UniqueViolationError:
            raise Conflict("Referral code already exists")
        return ReferralLink(**dict(row))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _insert_event(self, conn, event: Event) -> Event:
        row = await conn.fetchrow("""
            INSERT INTO events (
                org_id, campaign_id, participant_id, referral_link_id,
                event_type, metadata, ip_hash, user_agent, referrer, utm_params
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING id, created_at
        """,
            event.org_id,
            event.campaign_id,
            event.participant_id,
            event.referral_link_id,
            event.event_type.value,
            event.metadata,
            event.ip_hash,
            event.user_agent,
            event.referrer,
            event.utm_params
        )
        return event.model_copy(update={"id": row["id"], "created_at": row["created_at"]})

    async def record_click(self, event: Event) -> Event:
        """Append a click event and bump the link counter"""
        async with self.db.acquire() as conn:
            stored = await self._insert_event(conn, event)
            await conn.execute("""
                UPDATE referral_links
                SET clicks_count = clicks_count + 1, updated_at = NOW()
                WHERE id = $1
            """, event.referral_link_id)
        return stored

    async def insert_event(self, event: Event) -> Event:
        async with self.db.acquire() as conn:
            return await self._insert_event(conn, event)

    async def list_events(self, org_id, filters, offset, limit):
        where, args = _build_where(org_id, filters)
        async with self.db.read() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM events WHERE {where}", *args)
            rows = await conn.fetch(f"""
                SELECT * FROM events
                WHERE {where}
                ORDER BY created_at DESC
                OFFSET ${len(args) + 1} LIMIT ${len(args) + 2}
            """, *args, offset, limit)
        return [Event(**dict(r)) for r in rows], total

    async def get_click_events(self, org_id, campaign_id, since, link_id=None):
        args = [org_id, campaign_id, since, EventType.CLICK.value]
        link_clause = ""
        if link_id is not None:
            args.append(link_id)
            link_clause = "AND referral_link_id = $5"

        async with self.db.read() as conn:
            rows = await conn.fetch(f"""
                SELECT * FROM events
                WHERE org_id = $1 AND campaign_id = $2
                  AND created_at >= $3 AND event_type = $4
                  {link_clause}
                ORDER BY created_at
            """, *args)
        return [Event(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    async def create_conversion(self, conversion: Conversion) -> Conversion:
        """Insert a pending conversion and bump the link's conversion counter"""
        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO conversions (
                        org_id, campaign_id, participant_id, referral_link_id,
                        conversion_type, conversion_value, conversion_currency,
                        customer_email, customer_name, order_id, metadata, status
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                    RETURNING id, created_at
                """,
                    conversion.org_id,
                    conversion.campaign_id,
                    conversion.participant_id,
                    conversion.referral_link_id,
                    conversion.conversion_type.value,
                    conversion.conversion_value,
                    conversion.conversion_currency,
                    conversion.customer_email,
                    conversion.customer_name,
                    conversion.order_id,
                    conversion.metadata,
                    conversion.status.value
                )

                if conversion.referral_link_id:
                    await conn.execute("""
                        UPDATE referral_links
                        SET conversions_count = conversions_count + 1, updated_at = NOW()
                        WHERE id = $1
                    """, conversion.referral_link_id)
        except asyncpg.UniqueViolationError:
            raise Conflict("Conversion already exists for this customer and type")
        except (asyncpg.CheckViolationError, asyncpg.NumericValueOutOfRangeError):
            raise InvalidInput("Invalid conversion_value: out of range")

        return conversion.model_copy(update={"id": row["id"], "created_at": row["created_at"]})

    async def get_conversion(self, org_id: UUID, conversion_id: UUID) -> Optional[Conversion]:
        async with self.db.read() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM conversions
                WHERE id = $1 AND org_id = $2
            """, conversion_id, org_id)
        return Conversion(**dict(row)) if row else None

    async def list_conversions(self, org_id, filters, offset, limit):
        where, args = _build_where(org_id, filters)
        async with self.db.read() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM conversions WHERE {where}", *args)
            rows = await conn.fetch(f"""
                SELECT * FROM conversions
                WHERE {where}
                ORDER BY created_at DESC
                OFFSET ${len(args) + 1} LIMIT ${len(args) + 2}
            """, *args, offset, limit)
        return [Conversion(**dict(r)) for r in rows], total

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    async def create_reward(self, reward: Reward) -> Reward:
        try:
            async with self.db.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO rewards (
                        org_id, campaign_id, participant_id, conversion_id,
                        amount, currency, reward_type, payout_method,
                        payout_details, notes, status
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    RETURNING id, created_at
                """,
                    reward.org_id,
                    reward.campaign_id,
                    reward.participant_id,
                    reward.conversion_id,
                    reward.amount,
                    reward.currency,
                    reward.reward_type.value,
                    reward.payout_method,
                    reward.payout_details,
                    reward.notes,
                    reward.status.value
                )
        except asyncpg.UniqueViolationError:
            raise Conflict("Reward already exists for this conversion")
        except (asyncpg.CheckViolationError, asyncpg.NumericValueOutOfRangeError):
            raise InvalidInput("Invalid amount: out of range")

        return reward.model_copy(update={"id": row["id"], "created_at": row["created_at"]})

    async def list_rewards(self, org_id, filters, offset, limit):
        where, args = _build_where(org_id, filters)
        async with self.db.read() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM rewards WHERE {where}", *args)
            rows = await conn.fetch(f"""
                SELECT * FROM rewards
                WHERE {where}
                ORDER BY created_at DESC
                OFFSET ${len(args) + 1} LIMIT ${len(args) + 2}
            """, *args, offset, limit)
        return [Reward(**dict(r)) for r in rows], total

    # ------------------------------------------------------------------
    # Fraud signals
    # ------------------------------------------------------------------

    async def create_fraud_signal(self, signal: FraudSignal) -> Optional[FraudSignal]:
        """Insert a signal; returns None when the event is already flagged"""
        async with self.db.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO fraud_signals (org_id, event_id, score, reasons, status)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (event_id) DO NOTHING
                RETURNING id, created_at
            """,
                signal.org_id,
                signal.event_id,
                signal.score,
                signal.reasons,
                signal.status.value
            )
        if not row:
            return None
        return signal.model_copy(update={"id": row["id"], "created_at": row["created_at"]})

    async def list_fraud_signals(self, org_id, filters, offset, limit):
        where, args = _build_where(org_id, filters)
        async with self.db.read() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM fraud_signals WHERE {where}", *args)
            rows = await conn.fetch(f"""
                SELECT id, org_id, event_id, score, reasons, status, reviewed_at, created_at
                FROM fraud_signals
                WHERE {where}
                ORDER BY score DESC, created_at DESC
                OFFSET ${len(args) + 1} LIMIT ${len(args) + 2}
            """, *args, offset, limit)
        return [FraudSignal(**dict(r)) for r in rows], total

    async def update_fraud_signal_status(self, org_id, signal_id, status):
        async with self.db.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE fraud_signals
                SET status = $3, reviewed_at = NOW(), updated_at = NOW()
                WHERE id = $1 AND org_id = $2
                RETURNING id, org_id, event_id, score, reasons, status, reviewed_at, created_at
            """, signal_id, org_id, status.value)
        return FraudSignal(**dict(row)) if row else None
