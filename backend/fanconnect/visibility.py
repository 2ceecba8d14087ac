# fanconnect/visibility.py
"""
Posts and live feed, filtered server-side at read time.

Locked posts are still listed (so the UI can show an upsell card) but as a
teaser: content and image never leave the server for a viewer below the
required tier. Visibility is recomputed on every read; nothing is stored.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.access import AccessEvaluator
from fanconnect.errors import Conflict, NotFound, PermissionDenied, ValidationError, read_path, write_path
from fanconnect.profiles import ProfileService
from fanconnect.timeutil import Clock, utcnow

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


@dataclass(frozen=True)
class PostView:
    id: str
    creator_id: str
    slug: str
    title: str
    required_tier_level: int
    created_at: datetime
    locked: bool
    content: Optional[str] = None
    image_url: Optional[str] = None


def to_view(post: models.Post, viewer_tier: int) -> PostView:
    visible = int(post.required_tier_level or 0) <= viewer_tier
    return PostView(
        id=post.id,
        creator_id=post.creator_id,
        slug=post.slug,
        title=post.title,
        required_tier_level=post.required_tier_level,
        created_at=post.created_at,
        locked=not visible,
        content=post.content if visible else None,
        image_url=post.image_url if visible else None,
    )


def check_image_url(image_url: Optional[str]) -> Optional[str]:
    url = (image_url or "").strip()
    if not url:
        return None
    if not URL_RE.match(url):
        raise ValidationError("Invalid image URL", field="image_url")
    return url


class ContentService:
    def __init__(self, db: Optional[Session], now: Clock = utcnow) -> None:
        self.db = db
        self.now = now
        self.profiles = ProfileService(db, now=now)
        self.access = AccessEvaluator(db, now=now)

    # -------------------------------------------------
    # Posts
    # -------------------------------------------------
    @write_path
    def create_post(
        self,
        creator_id: str,
        *,
        slug: str,
        title: str,
        required_tier_level: int,
        content: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> models.Post:
        self.profiles.require_creator(creator_id)

        if isinstance(required_tier_level, bool) or required_tier_level not in config.GATING_LEVELS:
            raise ValidationError(
                f"required_tier_level must be one of {list(config.GATING_LEVELS)}",
                field="required_tier_level",
            )
        slug = (slug or "").strip().lower()
        if not SLUG_RE.match(slug):
            raise ValidationError("Slug must be lowercase letters, digits and dashes", field="slug")
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required", field="title")

        post = models.Post(
            creator_id=creator_id,
            slug=slug,
            title=title,
            content=content,
            image_url=check_image_url(image_url),
            required_tier_level=required_tier_level,
            created_at=self.now(),
        )
        self.db.add(post)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict("A post with this slug already exists", code="SLUG_TAKEN", slug=slug) from e

        self.db.refresh(post)
        logger.info("creator %s published post %s (tier %s)", creator_id, post.slug, post.required_tier_level)
        return post

    @write_path
    def delete_post(self, creator_id: str, post_id: str) -> None:
        result = self.db.execute(
            delete(models.Post).where(models.Post.id == post_id, models.Post.creator_id == creator_id)
        )
        if not result.rowcount:
            self.db.rollback()
            raise NotFound("Post not found or not owned by creator", code="POST_NOT_FOUND")
        self.db.commit()
        logger.info("creator %s deleted post %s", creator_id, post_id)

    @read_path(default=list)
    def _posts_by_creator(self, creator_id: str) -> list[models.Post]:
        stmt = (
            select(models.Post)
            .where(models.Post.creator_id == creator_id)
            .order_by(models.Post.created_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    @read_path(default=lambda: None)
    def _post_by_slug(self, creator_id: str, slug: str) -> Optional[models.Post]:
        return self.db.scalar(
            select(models.Post).where(models.Post.creator_id == creator_id, models.Post.slug == slug)
        )

    def list_posts_for_viewer(self, creator_id: str, viewer_id: Optional[str]) -> list[PostView]:
        posts = self._posts_by_creator(creator_id)
        if not posts:
            return []
        tier = self.access.viewer_tier(viewer_id, creator_id)
        return [to_view(p, tier) for p in posts]

    def get_post_for_viewer(self, creator_id: str, slug: str, viewer_id: Optional[str]) -> Optional[PostView]:
        post = self._post_by_slug(creator_id, slug)
        if post is None:
            return None
        return to_view(post, self.access.viewer_tier(viewer_id, creator_id))

    # -------------------------------------------------
    # Live feed
    # -------------------------------------------------
    @write_path
    def post_feed_message(
        self,
        creator_id: str,
        author_id: str,
        body: str,
        image_url: Optional[str] = None,
    ) -> models.FeedMessage:
        self.profiles.require_creator(creator_id)
        if author_id != creator_id:
            raise PermissionDenied("Only the creator can post to this feed", code="FEED_OWNER_ONLY")

        text = (body or "").strip()
        if not text:
            raise ValidationError("Feed message cannot be empty", field="body")
        if len(text) > config.FEED_MESSAGE_MAX_LENGTH:
            raise ValidationError(
                f"Feed message exceeds {config.FEED_MESSAGE_MAX_LENGTH} characters",
                code="TEXT_TOO_LONG",
                field="body",
                max_length=config.FEED_MESSAGE_MAX_LENGTH,
            )

        msg = models.FeedMessage(
            creator_id=creator_id,
            author_id=author_id,
            body=text,
            image_url=check_image_url(image_url),
            created_at=self.now(),
        )
        self.db.add(msg)
        self.db.commit()
        self.db.refresh(msg)
        return msg

    @read_path(default=list)
    def _feed_by_creator(self, creator_id: str) -> list[models.FeedMessage]:
        stmt = (
            select(models.FeedMessage)
            .where(models.FeedMessage.creator_id == creator_id)
            .order_by(models.FeedMessage.created_at.asc())
        )
        return list(self.db.scalars(stmt).all())

    def list_feed_for_viewer(self, creator_id: str, viewer_id: Optional[str]) -> list[models.FeedMessage]:
        if not self.access.can_view_feed(viewer_id, creator_id):
            return []
        return self._feed_by_creator(creator_id)
