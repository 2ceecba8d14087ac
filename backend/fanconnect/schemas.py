# fanconnect/schemas.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from fanconnect import config

Role = Literal["fan", "creator"]


# -----------------------------
# PROFILES
# -----------------------------
class ProfileOut(BaseModel):
    id: str
    full_name: Optional[str] = None
    role: Role
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    profile_image_url: Optional[str] = None
    banner_image_url: Optional[str] = None
    feed_min_tier: int = 0
    messages_min_tier: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class MeOut(ProfileOut):
    email: Optional[str] = None


class ProfileUpsertIn(BaseModel):
    role: Role = "fan"
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    bio: Optional[str] = Field(default=None, max_length=200)
    avatar_url: Optional[str] = None
    profile_image_url: Optional[str] = None
    banner_image_url: Optional[str] = None


class GatingIn(BaseModel):
    feed_min_tier: Optional[int] = Field(default=None, ge=0, le=3)
    messages_min_tier: Optional[int] = Field(default=None, ge=0, le=3)


# -----------------------------
# TIERS
# -----------------------------
class TierIn(BaseModel):
    # name/price rules live in TierCatalog so they apply to every caller
    name: str = ""
    description: Optional[str] = None
    price: Optional[int] = None


class TierOut(BaseModel):
    id: str
    creator_id: str
    level: int
    name: str
    description: Optional[str] = None
    price: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


# -----------------------------
# SUBSCRIPTIONS
# -----------------------------
class SubscribeIn(BaseModel):
    tier_level: int


class SubscriptionOut(BaseModel):
    subscriber_id: str
    creator_id: str
    tier_level: int
    subscribed_at: datetime
    expires_at: datetime
    is_active: bool = True

    class Config:
        from_attributes = True


class AccessOut(BaseModel):
    creator_id: str
    effective_tier: int
    can_view_feed: bool
    can_message: bool
    message_denied_reason: Optional[str] = None
    messages_min_tier: int = 0
    feed_min_tier: int = 0


class SubscriberOut(ProfileOut):
    tier_level: int
    expires_at: datetime


# -----------------------------
# POSTS / FEED
# -----------------------------
class PostCreateIn(BaseModel):
    slug: str
    title: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    required_tier_level: int = 0


class PostOut(BaseModel):
    id: str
    creator_id: str
    slug: str
    title: str
    required_tier_level: int
    created_at: datetime
    locked: bool = False
    content: Optional[str] = None
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class FeedMessageIn(BaseModel):
    body: str
    image_url: Optional[str] = None


class FeedMessageOut(BaseModel):
    id: str
    creator_id: str
    author_id: str
    body: str
    image_url: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# -----------------------------
# MESSAGING
# -----------------------------
class ConversationCreateIn(BaseModel):
    participant_id: str


class ConversationOut(BaseModel):
    id: str
    participant1_id: str
    participant2_id: str
    last_message_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class DirectMessageIn(BaseModel):
    # length is enforced by MessagingService too (direct callers can't skip it)
    message_text: str = Field(max_length=config.MESSAGE_MAX_LENGTH)


class DirectMessageOut(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    recipient_id: str
    message_text: str
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConversationSummaryOut(ConversationOut):
    other_participant: ProfileOut
    last_message: Optional[DirectMessageOut] = None
    unread_count: int = 0


class ReadReceiptOut(BaseModel):
    ok: bool = True
    marked: int


class UnreadCountOut(BaseModel):
    unread: int
