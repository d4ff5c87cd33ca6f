"""
Subscription registry: durable store of browser push endpoints.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidSubscriptionData, StorageError
from app.models.push_subscription import PushSubscription
from app.models.user import User

logger = logging.getLogger(__name__)


def parse_subscription(data: Any, require_keys: bool = True) -> dict:
    """Normalize a browser ``PushSubscription`` JSON object.

    Returns ``{"endpoint": ..., "keys": {"p256dh": ..., "auth": ...}}`` or
    raises InvalidSubscriptionData.
    """
    if not isinstance(data, dict) or not data.get("endpoint"):
        raise InvalidSubscriptionData("Invalid subscription data")

    keys = data.get("keys") or {}
    if not isinstance(keys, dict):
        raise InvalidSubscriptionData("Invalid subscription data")
    if require_keys and not (keys.get("p256dh") and keys.get("auth")):
        raise InvalidSubscriptionData("Invalid subscription data")

    return {
        "endpoint": str(data["endpoint"]),
        "keys": {"p256dh": keys.get("p256dh") or "", "auth": keys.get("auth") or ""},
    }


class SubscriptionRegistry:
    """Upsert-by-endpoint store for push subscriptions.

    Each operation touches a single row keyed by the unique endpoint, so
    concurrent calls for different endpoints never conflict and calls for the
    same endpoint are last-write-wins. Storage failures surface as
    ``StorageError``; nothing here spans a transaction with the delivery log.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert(
        self,
        subscription: dict,
        user_id: str | None = None,
        user_agent: str | None = None,
        browser_info: dict | None = None,
    ) -> str:
        """Create or refresh the row for ``subscription["endpoint"]``.

        Re-subscribing replaces keys, owner and device info and reactivates
        the row. Returns the row id either way.
        """
        subscription = parse_subscription(subscription)
        endpoint = subscription["endpoint"]
        try:
            result = await self.db.execute(
                select(PushSubscription).where(PushSubscription.endpoint == endpoint)
            )
            existing = result.scalar_one_or_none()

            if existing:
                existing.p256dh_key = subscription["keys"]["p256dh"]
                existing.auth_key = subscription["keys"]["auth"]
                existing.user_id = user_id
                existing.user_agent = user_agent
                existing.browser_info = browser_info or {}
                existing.is_active = True
                await self.db.commit()
                logger.info("Updated existing push subscription %s", existing.id)
                return existing.id

            row = PushSubscription(
                id=str(uuid.uuid4()),
                user_id=user_id,
                endpoint=endpoint,
                p256dh_key=subscription["keys"]["p256dh"],
                auth_key=subscription["keys"]["auth"],
                user_agent=user_agent,
                browser_info=browser_info or {},
                is_active=True,
            )
            self.db.add(row)
            await self.db.commit()
            logger.info("Created new push subscription %s", row.id)
            return row.id
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"Could not save push subscription: {e}") from e

    async def remove(self, endpoint: str) -> None:
        """Hard delete by endpoint. Removing an unknown endpoint is a no-op."""
        try:
            await self.db.execute(
                delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"Could not remove push subscription: {e}") from e

    async def remove_by_id(self, subscription_id: str) -> bool:
        try:
            result = await self.db.execute(
                delete(PushSubscription).where(PushSubscription.id == subscription_id)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"Could not remove push subscription: {e}") from e
        return result.rowcount > 0

    async def verify(self, endpoint: str) -> bool:
        """True iff an active row exists for ``endpoint``."""
        try:
            result = await self.db.execute(
                select(PushSubscription.id).where(
                    PushSubscription.endpoint == endpoint,
                    PushSubscription.is_active.is_(True),
                )
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Could not verify push subscription: {e}") from e
        return result.first() is not None

    async def list_active(self, user_id: str | None = None) -> list[PushSubscription]:
        """All active subscriptions, optionally only one user's."""
        query = select(PushSubscription).where(PushSubscription.is_active.is_(True))
        if user_id:
            query = query.where(PushSubscription.user_id == user_id)
        try:
            result = await self.db.execute(query.order_by(PushSubscription.created_at))
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list push subscriptions: {e}") from e
        return list(result.scalars().all())

    async def list_all(self) -> list[dict]:
        """Every subscription with its owner's email/name, newest first."""
        try:
            result = await self.db.execute(
                select(PushSubscription, User.email, User.name)
                .outerjoin(User, PushSubscription.user_id == User.id)
                .order_by(PushSubscription.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list push subscriptions: {e}") from e

        rows = []
        for sub, email, name in result.all():
            rows.append({
                "id": sub.id,
                "user_id": sub.user_id,
                "user_email": email,
                "user_name": name,
                "endpoint": sub.endpoint,
                "user_agent": sub.user_agent,
                "browser_info": sub.browser_info,
                "is_active": sub.is_active,
                "last_used": sub.last_used.isoformat() if sub.last_used else None,
                "created_at": sub.created_at.isoformat() if sub.created_at else None,
            })
        return rows

    async def touch(self, subscription_ids: list[str]) -> None:
        """Record a successful delivery time on the given rows."""
        if not subscription_ids:
            return
        await self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.id.in_(subscription_ids))
            .values(last_used=datetime.now(timezone.utc))
        )
