# fanconnect/routers/feed.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from fanconnect import auth, models, schemas
from fanconnect.dependencies import content_service
from fanconnect.visibility import ContentService

router = APIRouter(tags=["feed"])


@router.get("/creators/{creator_id}/feed", response_model=list[schemas.FeedMessageOut])
def creator_feed(
    creator_id: str,
    viewer_id: Optional[str] = Depends(auth.get_optional_user_id),
    content: ContentService = Depends(content_service),
):
    creator = content.profiles.get_profile(creator_id)
    if creator is None or creator.role != models.ROLE_CREATOR:
        raise HTTPException(status_code=404, detail={"code": "CREATOR_NOT_FOUND", "message": "Creator not found"})

    if not content.access.can_view_feed(viewer_id, creator_id):
        raise HTTPException(
            status_code=403,
            detail={
                "code": "SUBSCRIPTION_REQUIRED",
                "message": "Subscribe to see this feed.",
                "creator_id": creator_id,
                "required_tier": creator.feed_min_tier,
                "effective_tier": content.access.viewer_tier(viewer_id, creator_id),
            },
        )
    return content.list_feed_for_viewer(creator_id, viewer_id)


@router.post("/me/feed", response_model=schemas.FeedMessageOut, status_code=201)
def post_to_feed(
    payload: schemas.FeedMessageIn,
    creator: models.Profile = Depends(auth.require_creator),
    content: ContentService = Depends(content_service),
):
    return content.post_feed_message(creator.id, creator.id, payload.body, payload.image_url)
