"""Quota Gate - free-tier limit on quotation creation.

Free and past-due users may create FREE_QUOTA_LIMIT quotations in total;
active subscribers are unlimited. The decision is pure. The counter itself
is only ever changed through reserve_quota(), a single-document $inc.

Two concurrent creations can both pass the check before either increment
lands. The limit is a soft business rule, so that over-admission is accepted;
lost increments are not.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any
from pymongo import ReturnDocument
import logging
import os

from database import database
from models import SubscriptionStatus
from utils.errors import LimitReachedError, UnauthorizedError, UserNotFoundError

logger = logging.getLogger(__name__)

FREE_QUOTA_LIMIT = int(os.getenv("FREE_QUOTA_LIMIT", "10"))

# remaining value reported for active subscribers
UNLIMITED = -1


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    usage_count: int
    limit: int
    subscription_status: str
    remaining: int  # UNLIMITED for active subscribers

    @property
    def is_unlimited(self) -> bool:
        return self.remaining == UNLIMITED


def evaluate_quota(
    usage_count: int,
    subscription_status: str,
    limit: Optional[int] = None,
) -> QuotaDecision:
    """Deny iff usage_count >= limit and the subscription is not active."""
    if limit is None:
        limit = FREE_QUOTA_LIMIT
    status = str(getattr(subscription_status, "value", subscription_status) or SubscriptionStatus.FREE.value)
    usage_count = usage_count or 0

    if status == SubscriptionStatus.ACTIVE.value:
        return QuotaDecision(True, usage_count, limit, status, UNLIMITED)

    return QuotaDecision(
        allowed=usage_count < limit,
        usage_count=usage_count,
        limit=limit,
        subscription_status=status,
        remaining=max(0, limit - usage_count),
    )


def check_can_create(user: Dict[str, Any], limit: Optional[int] = None) -> QuotaDecision:
    """Raise LimitReachedError when the gate denies, otherwise return the decision."""
    decision = evaluate_quota(
        user.get("usage_count", 0),
        user.get("subscription_status", SubscriptionStatus.FREE.value),
        limit,
    )
    if not decision.allowed:
        logger.warning(
            f"Quota denied for user {user.get('user_id')}: "
            f"{decision.usage_count}/{decision.limit} ({decision.subscription_status})"
        )
        raise LimitReachedError(details={
            "usage_count": decision.usage_count,
            "limit": decision.limit,
            "subscription_status": decision.subscription_status,
        })
    return decision


async def reserve_quota(user_id: str) -> int:
    """Atomically add one to the user's usage counter. Returns the new count."""
    db = database.get_db()
    updated = await db.users.find_one_and_update(
        {"user_id": user_id},
        {"$inc": {"usage_count": 1}},
        projection={"_id": 0, "usage_count": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise UserNotFoundError()
    return updated["usage_count"]


async def get_subscription_summary(session_email: Optional[str]) -> Dict[str, Any]:
    """Quota and plan state for the upgrade / dashboard screens."""
    if not session_email:
        raise UnauthorizedError()

    db = database.get_db()
    user = await db.users.find_one({"email": session_email.lower()}, {"_id": 0})
    if not user:
        raise UserNotFoundError()

    decision = evaluate_quota(user.get("usage_count", 0), user.get("subscription_status"))
    end_date = user.get("subscription_end_date")
    return {
        "success": True,
        "subscription_status": decision.subscription_status,
        "usage_count": decision.usage_count,
        "free_quota_limit": decision.limit,
        "can_create_quotation": decision.allowed,
        "quotas_remaining": decision.remaining,
        "subscription_end_date": end_date.isoformat() if isinstance(end_date, datetime) else end_date,
    }
