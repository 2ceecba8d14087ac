# fanconnect/routers/posts.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from fanconnect import auth, models, schemas
from fanconnect.dependencies import content_service
from fanconnect.visibility import ContentService

router = APIRouter(tags=["posts"])


@router.get("/creators/{creator_id}/posts", response_model=list[schemas.PostOut])
def list_posts(
    creator_id: str,
    viewer_id: Optional[str] = Depends(auth.get_optional_user_id),
    content: ContentService = Depends(content_service),
):
    """
    Every post of the creator, newest first. Posts above the viewer's tier
    come back as locked teasers (no content, no image).
    """
    return content.list_posts_for_viewer(creator_id, viewer_id)


@router.get("/creators/{creator_id}/posts/{slug}", response_model=schemas.PostOut)
def get_post(
    creator_id: str,
    slug: str,
    viewer_id: Optional[str] = Depends(auth.get_optional_user_id),
    content: ContentService = Depends(content_service),
):
    view = content.get_post_for_viewer(creator_id, slug, viewer_id)
    if view is None:
        raise HTTPException(status_code=404, detail={"code": "POST_NOT_FOUND", "message": "Post not found"})
    return view


@router.post("/me/posts", response_model=schemas.PostOut, status_code=201)
def create_post(
    payload: schemas.PostCreateIn,
    creator: models.Profile = Depends(auth.require_creator),
    content: ContentService = Depends(content_service),
):
    return content.create_post(
        creator.id,
        slug=payload.slug,
        title=payload.title,
        content=payload.content,
        image_url=payload.image_url,
        required_tier_level=payload.required_tier_level,
    )


@router.delete("/me/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: str,
    creator: models.Profile = Depends(auth.require_creator),
    content: ContentService = Depends(content_service),
):
    content.delete_post(creator.id, post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
