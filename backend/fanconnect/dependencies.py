# fanconnect/dependencies.py
"""
Router-friendly service factories.

Each request gets services bound to its own store session (or None when
the store is not configured). Nothing here is a module-level singleton,
so tests override get_db / the clock and everything follows.
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from fanconnect.access import AccessEvaluator
from fanconnect.database import get_db
from fanconnect.ledger import SubscriptionLedger
from fanconnect.messaging import MessagingService
from fanconnect.profiles import ProfileService
from fanconnect.tiers import TierCatalog
from fanconnect.timeutil import Clock, utcnow
from fanconnect.visibility import ContentService


def get_clock() -> Clock:
    return utcnow


def profile_service(db: Optional[Session] = Depends(get_db), now: Clock = Depends(get_clock)) -> ProfileService:
    return ProfileService(db, now=now)


def tier_catalog(db: Optional[Session] = Depends(get_db), now: Clock = Depends(get_clock)) -> TierCatalog:
    return TierCatalog(db, now=now)


def subscription_ledger(
    db: Optional[Session] = Depends(get_db),
    now: Clock = Depends(get_clock),
) -> SubscriptionLedger:
    return SubscriptionLedger(db, now=now)


def access_evaluator(db: Optional[Session] = Depends(get_db), now: Clock = Depends(get_clock)) -> AccessEvaluator:
    return AccessEvaluator(db, now=now)


def content_service(db: Optional[Session] = Depends(get_db), now: Clock = Depends(get_clock)) -> ContentService:
    return ContentService(db, now=now)


def messaging_service(
    db: Optional[Session] = Depends(get_db),
    now: Clock = Depends(get_clock),
) -> MessagingService:
    return MessagingService(db, now=now)
