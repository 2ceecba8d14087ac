# fanconnect/models.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fanconnect.database import Base
from fanconnect.timeutil import utcnow

ROLE_FAN = "fan"
ROLE_CREATOR = "creator"
VALID_ROLES = {ROLE_FAN, ROLE_CREATOR}


def _uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("feed_min_tier BETWEEN 0 AND 3", name="ck_profiles_feed_min_tier"),
        CheckConstraint("messages_min_tier BETWEEN 0 AND 3", name="ck_profiles_messages_min_tier"),
        CheckConstraint("role IN ('fan', 'creator')", name="ck_profiles_role"),
    )

    # Same id the identity provider issues (token "sub")
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_FAN, index=True)

    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    banner_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Creator gating settings; 0 = unrestricted
    feed_min_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_min_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tiers = relationship("Tier", back_populates="creator", cascade="all, delete-orphan")
    posts = relationship("Post", back_populates="creator", cascade="all, delete-orphan")


class Tier(Base):
    __tablename__ = "tiers"
    __table_args__ = (
        UniqueConstraint("creator_id", "level", name="uq_tiers_creator_level"),
        CheckConstraint("level BETWEEN 1 AND 3", name="ck_tiers_level"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    creator_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Minor currency units; NULL = free tier
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    creator = relationship("Profile", back_populates="tiers")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        # One row per fan/creator pair; re-subscribing overwrites it
        UniqueConstraint("subscriber_id", "creator_id", name="uq_subscriptions_pair"),
        CheckConstraint("tier_level BETWEEN 1 AND 3", name="ck_subscriptions_tier_level"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subscriber_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    tier_level: Mapped[int] = mapped_column(Integer, nullable=False)

    subscribed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        UniqueConstraint("creator_id", "slug", name="uq_posts_creator_slug"),
        CheckConstraint("required_tier_level BETWEEN 0 AND 3", name="ck_posts_required_tier"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    creator_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    slug: Mapped[str] = mapped_column(String(160), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # 0 = public
    required_tier_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    creator = relationship("Profile", back_populates="posts")


class FeedMessage(Base):
    __tablename__ = "feed_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    creator_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    body: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # Participants are stored in canonical order so the unordered pair is unique
        UniqueConstraint("participant1_id", "participant2_id", name="uq_conversations_pair"),
        CheckConstraint("participant1_id < participant2_id", name="ck_conversations_canonical"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    participant1_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    participant2_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    last_message_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    messages = relationship("DirectMessage", back_populates="conversation", cascade="all, delete-orphan")

    def other_participant(self, user_id: str) -> str:
        return self.participant2_id if self.participant1_id == user_id else self.participant1_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.participant1_id, self.participant2_id)


class DirectMessage(Base):
    __tablename__ = "direct_messages"
    __table_args__ = (
        Index("ix_direct_messages_unread", "recipient_id", "read_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    message_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    # NULL = unread; only ever moves NULL -> timestamp
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
