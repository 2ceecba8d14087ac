# fanconnect/access.py
"""
Access decisions for (actor, resource) pairs.

Rules:
  - effective tier = level of the fan's subscription to the creator while
    expires_at > now, else 0 (anonymous viewers are tier 0)
  - a post is visible iff required_tier_level <= viewer tier
  - the feed is visible iff creator.feed_min_tier <= viewer tier
  - messaging:
      creator -> anyone holding an active subscription to that creator
      fan -> creator with an active subscription at >= messages_min_tier
      anything else -> denied

Nothing here is cached. Subscriptions expire in wall-clock time, so every
call re-reads the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.ledger import SubscriptionLedger, is_active
from fanconnect.profiles import ProfileService
from fanconnect.timeutil import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str = ""           # e.g. "no_active_subscription"
    required_tier: int = 0
    effective_tier: int = 0


def can_view_post(post: models.Post, viewer_effective_tier: int) -> bool:
    """Pure comparison; tier 0 (public) posts are visible to everyone."""
    return int(post.required_tier_level or 0) <= int(viewer_effective_tier or 0)


class AccessEvaluator:
    def __init__(self, db: Optional[Session], now: Clock = utcnow) -> None:
        self.db = db
        self.now = now
        self.profiles = ProfileService(db, now=now)
        self.ledger = SubscriptionLedger(db, now=now)

    # -------------------------------------------------
    # Tiers
    # -------------------------------------------------
    def effective_tier(self, fan_id: Optional[str], creator_id: str) -> int:
        if not fan_id:
            return 0
        sub = self.ledger.get_subscription(fan_id, creator_id)
        if is_active(sub, self.now()):
            return int(sub.tier_level)
        return 0

    def viewer_tier(self, viewer_id: Optional[str], creator_id: str) -> int:
        """Creators see all of their own content."""
        if viewer_id and viewer_id == creator_id:
            return config.TOP_TIER
        return self.effective_tier(viewer_id, creator_id)

    # -------------------------------------------------
    # Content
    # -------------------------------------------------
    def can_view_post(self, post: models.Post, viewer_effective_tier: int) -> bool:
        return can_view_post(post, viewer_effective_tier)

    def can_view_feed(self, viewer_id: Optional[str], creator_id: str) -> bool:
        creator = self.profiles.get_profile(creator_id)
        if creator is None or creator.role != models.ROLE_CREATOR:
            return False
        return int(creator.feed_min_tier or 0) <= self.viewer_tier(viewer_id, creator_id)

    # -------------------------------------------------
    # Messaging
    # -------------------------------------------------
    def message_decision(self, sender_id: Optional[str], recipient_id: Optional[str]) -> AccessDecision:
        sender = self.profiles.get_profile(sender_id)
        recipient = self.profiles.get_profile(recipient_id)
        if sender is None or recipient is None:
            return AccessDecision(False, reason="profile_not_found")

        if sender.role == models.ROLE_CREATOR:
            # Creator -> any paying subscriber, tier-independent
            sub = self.ledger.get_subscription(recipient.id, sender.id)
            if is_active(sub, self.now()):
                return AccessDecision(True, required_tier=1, effective_tier=int(sub.tier_level))
            return AccessDecision(False, reason="recipient_not_subscribed", required_tier=1)

        if sender.role == models.ROLE_FAN and recipient.role == models.ROLE_CREATOR:
            required = int(recipient.messages_min_tier or 0)
            sub = self.ledger.get_subscription(sender.id, recipient.id)
            if not is_active(sub, self.now()):
                return AccessDecision(False, reason="no_active_subscription", required_tier=max(required, 1))
            tier = int(sub.tier_level)
            if tier < required:
                return AccessDecision(False, reason="tier_too_low", required_tier=required, effective_tier=tier)
            return AccessDecision(True, required_tier=required, effective_tier=tier)

        return AccessDecision(False, reason="role_not_allowed")

    def can_send_message(self, sender_id: Optional[str], recipient_id: Optional[str]) -> bool:
        decision = self.message_decision(sender_id, recipient_id)
        if not decision.allowed:
            logger.info("message %s -> %s denied: %s", sender_id, recipient_id, decision.reason)
        return decision.allowed
