# fanconnect/tiers.py
"""
Per-creator tier catalog (levels 1..3).

Catalog rows are descriptive only. Deleting a tier does NOT touch the
subscription ledger: fans already at that level keep it until expiry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.database import upsert_row
from fanconnect.errors import PermissionDenied, ValidationError, read_path, write_path
from fanconnect.profiles import ProfileService
from fanconnect.timeutil import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierPricePolicy:
    """Business-configured price bounds. Swap the instance to change the rules."""

    floor: int = config.TIER_PRICE_FLOOR
    top_ceiling: int = config.TIER_TOP_PRICE_CEILING
    top_level: int = config.TOP_TIER

    def check(self, level: int, price: Optional[int]) -> None:
        if price is None:
            return  # free tier
        if isinstance(price, bool) or not isinstance(price, int):
            raise ValidationError("Price must be a whole number", field="price", level=level)
        if price < self.floor:
            raise ValidationError(
                f"Price for level {level} is below the minimum of {self.floor}",
                code="PRICE_BELOW_FLOOR",
                field="price",
                level=level,
            )
        if level == self.top_level and price > self.top_ceiling:
            raise ValidationError(
                f"Price for level {level} is above the maximum of {self.top_ceiling}",
                code="PRICE_ABOVE_CEILING",
                field="price",
                level=level,
            )


@dataclass(frozen=True)
class TierInput:
    name: str
    description: Optional[str] = None
    price: Optional[int] = None
    enabled: bool = True


def check_level(level: int) -> int:
    if isinstance(level, bool) or level not in config.TIER_LEVELS:
        raise ValidationError(f"Tier level must be one of {list(config.TIER_LEVELS)}", field="level")
    return level


class TierCatalog:
    def __init__(
        self,
        db: Optional[Session],
        policy: TierPricePolicy | None = None,
        now: Clock = utcnow,
    ) -> None:
        self.db = db
        self.policy = policy or TierPricePolicy()
        self.now = now
        self.profiles = ProfileService(db, now=now)

    @read_path(default=list)
    def list_tiers(self, creator_id: str) -> list[models.Tier]:
        stmt = select(models.Tier).where(models.Tier.creator_id == creator_id).order_by(models.Tier.level)
        return list(self.db.scalars(stmt).all())

    @read_path(default=lambda: None)
    def get_tier(self, creator_id: str, level: int) -> Optional[models.Tier]:
        return self.db.scalar(
            select(models.Tier).where(models.Tier.creator_id == creator_id, models.Tier.level == level)
        )

    def _validate(self, level: int, data: TierInput) -> str:
        check_level(level)
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("Tier name is required", code="TIER_NAME_REQUIRED", field="name", level=level)
        self.policy.check(level, data.price)
        return name

    def _require_creator(self, creator_id: str) -> None:
        profile = self.profiles.get_profile(creator_id)
        if profile is None or profile.role != models.ROLE_CREATOR:
            raise PermissionDenied("Only creators can edit tiers", code="CREATOR_REQUIRED")

    def _write(self, creator_id: str, level: int, name: str, data: TierInput) -> models.Tier:
        return upsert_row(
            self.db,
            models.Tier,
            {
                "creator_id": creator_id,
                "level": level,
                "name": name,
                "description": (data.description or "").strip() or None,
                "price": data.price,
                "created_at": self.now(),
            },
            conflict_cols=("creator_id", "level"),
            update_cols=("name", "description", "price"),
        )

    @write_path
    def save_tier(
        self,
        creator_id: str,
        level: int,
        name: str,
        description: Optional[str] = None,
        price: Optional[int] = None,
    ) -> models.Tier:
        self._require_creator(creator_id)
        data = TierInput(name=name, description=description, price=price)
        clean_name = self._validate(level, data)

        tier = self._write(creator_id, level, clean_name, data)
        self.db.commit()
        logger.info("creator %s saved tier %s", creator_id, level)
        return tier

    @write_path
    def disable_tier(self, creator_id: str, level: int) -> None:
        self._require_creator(creator_id)
        check_level(level)
        self.db.execute(
            delete(models.Tier).where(models.Tier.creator_id == creator_id, models.Tier.level == level)
        )
        self.db.commit()
        logger.info("creator %s disabled tier %s (existing subscriptions kept)", creator_id, level)

    @write_path
    def save_catalog(self, creator_id: str, levels: Mapping[int, Optional[TierInput]]) -> list[models.Tier]:
        """
        Apply the whole catalog at once. Validates every enabled level first,
        so a bad entry writes nothing.
        """
        self._require_creator(creator_id)

        plan: list[tuple[int, Optional[str], Optional[TierInput]]] = []
        for level in config.TIER_LEVELS:
            data = levels.get(level)
            if data is None or not data.enabled:
                plan.append((level, None, None))
            else:
                plan.append((level, self._validate(level, data), data))

        for level, name, data in plan:
            if data is None:
                self.db.execute(
                    delete(models.Tier).where(models.Tier.creator_id == creator_id, models.Tier.level == level)
                )
            else:
                self._write(creator_id, level, name, data)

        self.db.commit()
        logger.info("creator %s catalog saved", creator_id)
        return self.list_tiers(creator_id)
