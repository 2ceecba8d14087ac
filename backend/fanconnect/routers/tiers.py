# fanconnect/routers/tiers.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from fanconnect import auth, models, schemas
from fanconnect.dependencies import tier_catalog
from fanconnect.tiers import TierCatalog

router = APIRouter(tags=["tiers"])


@router.get("/creators/{creator_id}/tiers", response_model=list[schemas.TierOut])
def list_tiers(creator_id: str, catalog: TierCatalog = Depends(tier_catalog)):
    return catalog.list_tiers(creator_id)


@router.put("/me/tiers/{level}", response_model=schemas.TierOut)
def save_tier(
    level: int,
    payload: schemas.TierIn,
    creator: models.Profile = Depends(auth.require_creator),
    catalog: TierCatalog = Depends(tier_catalog),
):
    return catalog.save_tier(creator.id, level, payload.name, payload.description, payload.price)


@router.delete("/me/tiers/{level}", status_code=status.HTTP_204_NO_CONTENT)
def disable_tier(
    level: int,
    creator: models.Profile = Depends(auth.require_creator),
    catalog: TierCatalog = Depends(tier_catalog),
):
    # Existing subscribers at this level keep access until their expiry.
    catalog.disable_tier(creator.id, level)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
