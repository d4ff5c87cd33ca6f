"""
Push notifications router for web push subscriptions.
"""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.deps import CurrentUserOptional, DBSession, SessionFactory
from app.services.push import record_interaction
from app.services.push_registry import SubscriptionRegistry, parse_subscription
from app.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/push", tags=["push"])


class SubscribeRequest(BaseModel):
    subscription: Any = None
    user_agent: str | None = Field(default=None, alias="userAgent")
    browser_info: dict | None = Field(default=None, alias="browserInfo")


class EndpointRequest(BaseModel):
    subscription: Any = None


class InteractionRequest(BaseModel):
    action: str
    notification_id: str | None = Field(default=None, alias="notificationId")
    timestamp: int | float


@router.get("/vapid-public-key")
async def get_vapid_public_key():
    """Get the VAPID public key for push subscription."""
    if not settings.vapid_public_key:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Push notifications not configured",
        )
    return JSONResponse({"publicKey": settings.vapid_public_key})


@router.post("/subscribe")
async def subscribe(
    request: Request,
    payload: SubscribeRequest,
    user: CurrentUserOptional,
    db: DBSession,
):
    """Register (or refresh) this browser's push subscription.

    Anonymous callers may subscribe; signed-in callers get the row attached
    to their account.
    """
    subscription = parse_subscription(payload.subscription)
    subscription_id = await SubscriptionRegistry(db).upsert(
        subscription,
        user_id=user.id if user else None,
        user_agent=payload.user_agent or request.headers.get("User-Agent"),
        browser_info=payload.browser_info,
    )
    logger.info("Push subscription %s saved (user %s)", subscription_id, user.id if user else "anonymous")
    return JSONResponse({
        "success": True,
        "message": "Subscription saved successfully",
        "subscriptionId": subscription_id,
    })


@router.post("/unsubscribe")
async def unsubscribe(payload: EndpointRequest, db: DBSession):
    """Remove this browser's subscription. Unknown endpoints are fine."""
    subscription = parse_subscription(payload.subscription, require_keys=False)
    await SubscriptionRegistry(db).remove(subscription["endpoint"])
    return JSONResponse({"success": True, "message": "Unsubscribed successfully"})


@router.post("/verify-subscription")
async def verify_subscription(payload: EndpointRequest, db: DBSession):
    subscription = parse_subscription(payload.subscription, require_keys=False)
    is_valid = await SubscriptionRegistry(db).verify(subscription["endpoint"])
    return JSONResponse({"success": True, "isValid": is_valid})


@router.post("/log-interaction")
async def log_interaction(
    payload: InteractionRequest,
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory,
):
    """Record a click/close reported by the service worker.

    Always answers success; the log update happens after the response.
    """
    background_tasks.add_task(
        record_interaction,
        session_factory,
        payload.action,
        payload.notification_id,
        payload.timestamp,
    )
    return JSONResponse({"success": True})
