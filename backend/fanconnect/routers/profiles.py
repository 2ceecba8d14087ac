# fanconnect/routers/profiles.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from fanconnect import auth, models, schemas
from fanconnect.dependencies import profile_service
from fanconnect.profiles import ProfileService

router = APIRouter(tags=["profiles"])


@router.get("/creators", response_model=list[schemas.ProfileOut])
def list_creators(profiles: ProfileService = Depends(profile_service)):
    return profiles.list_creators()


@router.get("/profiles/{profile_id}", response_model=schemas.ProfileOut)
def get_profile(profile_id: str, profiles: ProfileService = Depends(profile_service)):
    profile = profiles.get_profile(profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail={"code": "PROFILE_NOT_FOUND", "message": "Profile not found"})
    return profile


# -------------------------------------------------
# ME
# -------------------------------------------------
@router.get("/me", response_model=schemas.MeOut)
def me(profile: models.Profile = Depends(auth.get_current_profile)):
    return profile


@router.put("/me", response_model=schemas.MeOut)
def upsert_me(
    payload: schemas.ProfileUpsertIn,
    user_id: str = Depends(auth.get_current_user_id),
    profiles: ProfileService = Depends(profile_service),
):
    """
    First call after signup creates the profile (role fixed from then on);
    later calls update display fields.
    """
    return profiles.upsert_profile(
        user_id,
        role=payload.role,
        email=str(payload.email) if payload.email else None,
        full_name=payload.full_name,
        bio=payload.bio,
        avatar_url=payload.avatar_url,
        profile_image_url=payload.profile_image_url,
        banner_image_url=payload.banner_image_url,
    )


@router.patch("/me/gating", response_model=schemas.MeOut)
def update_gating(
    payload: schemas.GatingIn,
    creator: models.Profile = Depends(auth.require_creator),
    profiles: ProfileService = Depends(profile_service),
):
    return profiles.update_gating(
        creator.id,
        feed_min_tier=payload.feed_min_tier,
        messages_min_tier=payload.messages_min_tier,
    )
