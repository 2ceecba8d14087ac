# fanconnect/ledger.py
"""
Subscription ledger: the source of truth for a fan's access level.

One row per (subscriber, creator). Subscribing again overwrites level and
expiry (upgrade, downgrade and renewal are the same operation). Expiry is
implicit: rows are never swept, readers compare expires_at with now.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.database import upsert_row
from fanconnect.errors import NotFound, ValidationError, read_path, write_path
from fanconnect.profiles import ProfileService
from fanconnect.tiers import TierCatalog, check_level
from fanconnect.timeutil import Clock, as_utc_naive, utcnow

logger = logging.getLogger(__name__)


def is_active(sub: Optional[models.Subscription], now) -> bool:
    """Active iff expires_at is strictly in the future; unparseable -> expired."""
    if sub is None:
        return False
    expires = as_utc_naive(sub.expires_at)
    return expires is not None and expires > now


class SubscriptionLedger:
    def __init__(
        self,
        db: Optional[Session],
        now: Clock = utcnow,
        validity: timedelta | None = None,
    ) -> None:
        self.db = db
        self.now = now
        self.validity = validity or timedelta(days=config.SUBSCRIPTION_DAYS)
        self.profiles = ProfileService(db, now=now)
        self.catalog = TierCatalog(db, now=now)

    # -----------------------------
    # writes
    # -----------------------------
    @write_path
    def subscribe_to_creator(self, creator_id: str, tier_level: int, subscriber_id: str) -> models.Subscription:
        check_level(tier_level)
        if creator_id == subscriber_id:
            raise ValidationError("You cannot subscribe to yourself", code="SELF_SUBSCRIPTION")

        self.profiles.require_creator(creator_id)
        if self.db.get(models.Profile, subscriber_id) is None:
            raise NotFound("Subscriber profile not found", code="PROFILE_NOT_FOUND")

        # Only levels currently offered can be bought; existing rows at a
        # since-deleted level are left alone.
        if self.catalog.get_tier(creator_id, tier_level) is None:
            raise NotFound(
                f"Tier {tier_level} is not offered by this creator",
                code="TIER_NOT_OFFERED",
                tier_level=tier_level,
            )

        now = self.now()
        sub = upsert_row(
            self.db,
            models.Subscription,
            {
                "subscriber_id": subscriber_id,
                "creator_id": creator_id,
                "tier_level": tier_level,
                "subscribed_at": now,
                "expires_at": now + self.validity,
            },
            conflict_cols=("subscriber_id", "creator_id"),
            update_cols=("tier_level", "subscribed_at", "expires_at"),
        )
        self.db.commit()
        logger.info(
            "subscriber %s -> creator %s at level %s until %s",
            subscriber_id,
            creator_id,
            tier_level,
            sub.expires_at.isoformat(),
        )
        return sub

    @write_path
    def unsubscribe(self, creator_id: str, subscriber_id: str) -> bool:
        result = self.db.execute(
            delete(models.Subscription).where(
                models.Subscription.creator_id == creator_id,
                models.Subscription.subscriber_id == subscriber_id,
            )
        )
        self.db.commit()
        removed = bool(result.rowcount)
        if removed:
            logger.info("subscriber %s left creator %s", subscriber_id, creator_id)
        return removed

    # -----------------------------
    # reads
    # -----------------------------
    @read_path(default=lambda: None)
    def get_subscription(self, subscriber_id: Optional[str], creator_id: str) -> Optional[models.Subscription]:
        if not subscriber_id:
            return None
        return self.db.scalar(
            select(models.Subscription)
            .where(
                models.Subscription.subscriber_id == subscriber_id,
                models.Subscription.creator_id == creator_id,
            )
            .execution_options(populate_existing=True)
        )

    @read_path(default=list)
    def list_by_subscriber(self, subscriber_id: str) -> list[models.Subscription]:
        stmt = (
            select(models.Subscription)
            .where(models.Subscription.subscriber_id == subscriber_id)
            .order_by(models.Subscription.subscribed_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    @read_path(default=list)
    def list_by_creator(self, creator_id: str) -> list[models.Subscription]:
        stmt = (
            select(models.Subscription)
            .where(models.Subscription.creator_id == creator_id)
            .order_by(models.Subscription.subscribed_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def active_by_creator(self, creator_id: str) -> list[models.Subscription]:
        now = self.now()
        return [s for s in self.list_by_creator(creator_id) if is_active(s, now)]

    def active_subscriber_profiles(self, creator_id: str) -> list[models.Profile]:
        ids = [s.subscriber_id for s in self.active_by_creator(creator_id)]
        return self.profiles.get_profiles_by_ids(ids)

    def stats_by_tier(self, creator_id: str) -> dict[int, int]:
        counts = Counter(s.tier_level for s in self.active_by_creator(creator_id))
        return dict(sorted(counts.items()))
