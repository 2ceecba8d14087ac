# fanconnect/routers/subscriptions.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from fanconnect import auth, models, schemas
from fanconnect.access import AccessEvaluator
from fanconnect.dependencies import access_evaluator, subscription_ledger
from fanconnect.ledger import SubscriptionLedger, is_active

router = APIRouter(tags=["subscriptions"])


def _sub_out(sub: models.Subscription, ledger: SubscriptionLedger) -> schemas.SubscriptionOut:
    return schemas.SubscriptionOut(
        subscriber_id=sub.subscriber_id,
        creator_id=sub.creator_id,
        tier_level=sub.tier_level,
        subscribed_at=sub.subscribed_at,
        expires_at=sub.expires_at,
        is_active=is_active(sub, ledger.now()),
    )


@router.post("/creators/{creator_id}/subscription", response_model=schemas.SubscriptionOut, status_code=201)
def subscribe(
    creator_id: str,
    payload: schemas.SubscribeIn,
    user_id: str = Depends(auth.get_current_user_id),
    ledger: SubscriptionLedger = Depends(subscription_ledger),
):
    """Subscribe, renew, upgrade or downgrade; all the same upsert. No billing."""
    sub = ledger.subscribe_to_creator(creator_id, payload.tier_level, user_id)
    return _sub_out(sub, ledger)


@router.delete("/creators/{creator_id}/subscription", status_code=status.HTTP_204_NO_CONTENT)
def unsubscribe(
    creator_id: str,
    user_id: str = Depends(auth.get_current_user_id),
    ledger: SubscriptionLedger = Depends(subscription_ledger),
):
    if not ledger.unsubscribe(creator_id, user_id):
        raise HTTPException(status_code=404, detail={"code": "SUBSCRIPTION_NOT_FOUND", "message": "Not subscribed"})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/creators/{creator_id}/access", response_model=schemas.AccessOut)
def creator_access(
    creator_id: str,
    user_id: Optional[str] = Depends(auth.get_optional_user_id),
    access: AccessEvaluator = Depends(access_evaluator),
):
    """What the current viewer can do with this creator (drives lock/upsell UI)."""
    creator = access.profiles.get_profile(creator_id)
    if creator is None or creator.role != models.ROLE_CREATOR:
        raise HTTPException(status_code=404, detail={"code": "CREATOR_NOT_FOUND", "message": "Creator not found"})

    decision = access.message_decision(user_id, creator_id) if user_id else None
    return schemas.AccessOut(
        creator_id=creator_id,
        effective_tier=access.viewer_tier(user_id, creator_id),
        can_view_feed=access.can_view_feed(user_id, creator_id),
        can_message=bool(decision and decision.allowed),
        message_denied_reason=None if decision and decision.allowed else (decision.reason if decision else "anonymous"),
        messages_min_tier=creator.messages_min_tier,
        feed_min_tier=creator.feed_min_tier,
    )


@router.get("/me/subscriptions", response_model=list[schemas.SubscriptionOut])
def my_subscriptions(
    user_id: str = Depends(auth.get_current_user_id),
    ledger: SubscriptionLedger = Depends(subscription_ledger),
):
    return [_sub_out(s, ledger) for s in ledger.list_by_subscriber(user_id)]


@router.get("/me/subscribers", response_model=list[schemas.SubscriberOut])
def my_subscribers(
    creator: models.Profile = Depends(auth.require_creator),
    ledger: SubscriptionLedger = Depends(subscription_ledger),
):
    active = {s.subscriber_id: s for s in ledger.active_by_creator(creator.id)}
    out: list[schemas.SubscriberOut] = []
    for p in ledger.profiles.get_profiles_by_ids(active.keys()):
        sub = active[p.id]
        base = schemas.ProfileOut.model_validate(p).model_dump()
        out.append(schemas.SubscriberOut(**base, tier_level=sub.tier_level, expires_at=sub.expires_at))
    return out


@router.get("/me/subscribers/stats")
def my_subscriber_stats(
    creator: models.Profile = Depends(auth.require_creator),
    ledger: SubscriptionLedger = Depends(subscription_ledger),
):
    stats = ledger.stats_by_tier(creator.id)
    return {
        "ok": True,
        "total": sum(stats.values()),
        "by_tier": {str(level): stats.get(level, 0) for level in (1, 2, 3)},
    }
