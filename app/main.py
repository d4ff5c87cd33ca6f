"""
FastAPI application entry point.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.db import async_session_maker, close_db, init_db
from app.exceptions import InvalidSubscriptionData, StorageError
from app.services.push import WebPushTransport, make_status_change_notifier
from app.services.shop_status import ShopStatusService
from app.settings import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s" if settings.log_format == "text" else None,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting %s...", settings.app_name)
    await init_db()

    transport = WebPushTransport()
    status_service = ShopStatusService(
        async_session_maker,
        on_change=make_status_change_notifier(async_session_maker, transport),
    )
    app.state.push_transport = transport
    app.state.status_service = status_service

    await status_service.refresh()
    status_service.start()
    yield
    logger.info("Shutting down %s...", settings.app_name)
    await status_service.stop()
    transport.close()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests for logging."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Health check endpoint
@app.get("/healthz", tags=["health"])
@app.get("/health", tags=["health"])
async def healthz():
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}


@app.get("/version", tags=["meta"])
async def version():
    """Return app version and the build it came from."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "build_sha": settings.build_sha,
        "push_enabled": settings.push_enabled,
    }


# Import and include routers
from app.routers import admin, push, shop

app.include_router(shop.router)
app.include_router(push.router)
app.include_router(admin.router)


@app.exception_handler(InvalidSubscriptionData)
async def invalid_subscription_handler(request: Request, exc: InvalidSubscriptionData):
    return JSONResponse({"success": False, "message": str(exc)}, status_code=400)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    return JSONResponse(
        {"success": False, "message": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse({"success": False, "message": "Storage error"}, status_code=500)


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse({"success": False, "message": "Internal server error"}, status_code=500)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
