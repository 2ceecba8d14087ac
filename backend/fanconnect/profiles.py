# fanconnect/profiles.py
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.errors import NotFound, PermissionDenied, ValidationError, read_path, write_path
from fanconnect.timeutil import Clock, utcnow

logger = logging.getLogger(__name__)


def normalize_role(value: Optional[str]) -> str:
    r = (value or "").strip().lower()
    if r not in models.VALID_ROLES:
        raise ValidationError(f"Unknown role: {value!r}", field="role")
    return r


def check_gating_level(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value not in config.GATING_LEVELS:
        raise ValidationError(f"{field} must be one of {list(config.GATING_LEVELS)}", field=field)
    return value


class ProfileService:
    def __init__(self, db: Optional[Session], now: Clock = utcnow) -> None:
        self.db = db
        self.now = now

    # -----------------------------
    # reads
    # -----------------------------
    @read_path(default=lambda: None)
    def get_profile(self, profile_id: Optional[str]) -> Optional[models.Profile]:
        if not profile_id:
            return None
        return self.db.get(models.Profile, profile_id)

    @read_path(default=list)
    def list_creators(self) -> list[models.Profile]:
        stmt = (
            select(models.Profile)
            .where(models.Profile.role == models.ROLE_CREATOR)
            .order_by(models.Profile.created_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    @read_path(default=list)
    def get_profiles_by_ids(self, ids: Iterable[str]) -> list[models.Profile]:
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        return list(self.db.scalars(select(models.Profile).where(models.Profile.id.in_(ids))).all())

    # -----------------------------
    # writes
    # -----------------------------
    def require_creator(self, creator_id: str) -> models.Profile:
        """Write-path lookup: missing or non-creator referent is a hard failure."""
        creator = self.db.get(models.Profile, creator_id)
        if creator is None or creator.role != models.ROLE_CREATOR:
            raise NotFound("Creator not found", code="CREATOR_NOT_FOUND", creator_id=creator_id)
        return creator

    @write_path
    def upsert_profile(
        self,
        profile_id: str,
        *,
        role: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        bio: Optional[str] = None,
        avatar_url: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        banner_image_url: Optional[str] = None,
    ) -> models.Profile:
        """
        Create or refresh the caller's own profile.

        The role is fixed at creation; switching fan <-> creator later is
        rejected so existing subscriptions/gating can't change meaning.
        """
        role = normalize_role(role)
        profile = self.db.get(models.Profile, profile_id)

        if profile is None:
            profile = models.Profile(id=profile_id, role=role, created_at=self.now())
            self.db.add(profile)
        elif profile.role != role:
            raise ValidationError("Profile role cannot be changed", field="role")

        for field, value in (
            ("email", email),
            ("full_name", full_name),
            ("bio", bio),
            ("avatar_url", avatar_url),
            ("profile_image_url", profile_image_url),
            ("banner_image_url", banner_image_url),
        ):
            if value is not None:
                setattr(profile, field, value)

        self.db.commit()
        self.db.refresh(profile)
        logger.info("profile %s saved (role=%s)", profile.id, profile.role)
        return profile

    @write_path
    def update_gating(
        self,
        creator_id: str,
        *,
        feed_min_tier: Optional[int] = None,
        messages_min_tier: Optional[int] = None,
    ) -> models.Profile:
        profile = self.db.get(models.Profile, creator_id)
        if profile is None:
            raise NotFound("Profile not found", code="PROFILE_NOT_FOUND")
        if profile.role != models.ROLE_CREATOR:
            raise PermissionDenied("Only creators have gating settings", code="CREATOR_REQUIRED")

        if feed_min_tier is not None:
            profile.feed_min_tier = check_gating_level(feed_min_tier, "feed_min_tier")
        if messages_min_tier is not None:
            profile.messages_min_tier = check_gating_level(messages_min_tier, "messages_min_tier")

        self.db.commit()
        self.db.refresh(profile)
        logger.info(
            "creator %s gating: feed>=%s messages>=%s",
            profile.id,
            profile.feed_min_tier,
            profile.messages_min_tier,
        )
        return profile
