"""
Public shop status routes: current status, overlay decision and reopen
email signup.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr
from sqlalchemy import select

from app.deps import CurrentUserOptional, DBSession, StatusService
from app.models.shop import ShopEmailSubscriber
from app.services.overlay import InteractionGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shop", tags=["shop"])


class EmailSubscribeRequest(BaseModel):
    email: EmailStr


@router.get("/status")
async def get_shop_status(
    status_service: StatusService,
    refresh: bool = Query(default=False),
):
    """Current shop status; ``refresh=true`` re-evaluates before answering."""
    shop_status = await (status_service.refresh() if refresh else status_service.get_status())
    return JSONResponse(shop_status.to_dict())


@router.get("/overlay")
async def get_overlay(
    status_service: StatusService,
    user: CurrentUserOptional,
    path: str = Query(default="/"),
):
    """Whether the blocking overlay applies to the caller on ``path``."""
    shop_status = await status_service.get_status()
    is_admin = bool(user and user.is_admin)
    gate = InteractionGate(status_service.should_show_overlay(shop_status, path, is_admin))
    return JSONResponse({**gate.snapshot().to_dict(), "status": shop_status.to_dict()})


@router.post("/notification/subscribe")
async def subscribe_reopen_email(payload: EmailSubscribeRequest, db: DBSession):
    """Collect an email to be told when the shop reopens."""
    email = payload.email.lower()
    result = await db.execute(
        select(ShopEmailSubscriber).where(ShopEmailSubscriber.email == email)
    )
    existing = result.scalar_one_or_none()

    if existing:
        if existing.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email này đã được đăng ký nhận thông báo",
            )
        existing.is_active = True
    else:
        db.add(ShopEmailSubscriber(email=email, is_active=True))

    logger.info("Reopen email subscription for %s", email)
    return JSONResponse({
        "success": True,
        "message": "Đăng ký nhận thông báo thành công! Chúng tôi sẽ thông báo khi cửa hàng mở cửa.",
    })
