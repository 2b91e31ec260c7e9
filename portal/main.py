# portal/main.py

import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from portal.core.config import settings
from portal.core.database import AsyncSessionLocal, init_db, test_connection
from portal.core.errors import MutationFailed, PermissionDenied, SessionExpired, UnknownCollection
from portal.core.identity import ImpersonationError
from portal.models.user import UserRole
from portal.services.user_service import create_user, get_user_by_email

# Routers
from portal.api.endpoints import (
    access_control as access_control_router,
    account as account_router,
    auth as auth_router,
    data as data_router,
    identity as identity_router,
    logs as logs_router,
    notifications as notifications_router,
)

# ------------------------------------------------------------
# LOGURU CONFIGURATION
# ------------------------------------------------------------
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
           "<level>{level}</level> | "
           "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
           "<level>{message}</level>",
    colorize=True,
    backtrace=True,
    diagnose=settings.ENV != "prod",
)

# ------------------------------------------------------------
# FASTAPI APP INIT
# ------------------------------------------------------------
app = FastAPI(
    title="Business Console Backend",
    version="1.0.0",
    description="Permission-gated console over the business data API.",
)

# ------------------------------------------------------------
# CORS CONFIGURATION
# ------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "*"],
)


# ------------------------------------------------------------
# PIPELINE ERRORS -> HTTP
# ------------------------------------------------------------
@app.exception_handler(PermissionDenied)
async def handle_permission_denied(request: Request, exc: PermissionDenied):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(SessionExpired)
async def handle_session_expired(request: Request, exc: SessionExpired):
    logger.warning(f"Session expired at {request.url}: {exc.detail}")
    return JSONResponse(status_code=401, content={"detail": "Session expired. Please log in again."})


@app.exception_handler(MutationFailed)
async def handle_mutation_failed(request: Request, exc: MutationFailed):
    # Client errors pass through; anything else is the upstream's fault
    code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
    return JSONResponse(status_code=code, content={"detail": exc.detail})


@app.exception_handler(UnknownCollection)
async def handle_unknown_collection(request: Request, exc: UnknownCollection):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ImpersonationError)
async def handle_impersonation_error(request: Request, exc: ImpersonationError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ------------------------------------------------------------
# REGISTER ROUTERS
# ------------------------------------------------------------
app.include_router(auth_router.router)
app.include_router(identity_router.router)
app.include_router(access_control_router.router)
app.include_router(account_router.router)
app.include_router(logs_router.router)
app.include_router(notifications_router.router)
app.include_router(data_router.router)


# ------------------------------------------------------------
# APPLICATION STARTUP EVENTS
# ------------------------------------------------------------
@app.on_event("startup")
async def on_startup():
    logger.info("Starting Business Console Backend...")

    # 1) Database connection test
    try:
        await test_connection()
        logger.success("Database connection established.")
    except Exception:
        logger.exception("Startup aborted: Database connection failed.")
        return

    # 2) Initialize database tables
    try:
        await init_db()
        logger.success("Database tables ready.")
    except Exception as e:
        logger.warning(f"Table initialization encountered an issue: {e}")

    # 3) Seed Super Admin
    if not settings.SUPER_ADMIN_EMAIL or not settings.SUPER_ADMIN_PASSWORD:
        logger.warning("Missing Super Admin credentials in settings.")
        return

    try:
        async with AsyncSessionLocal() as session:
            existing = await get_user_by_email(session, settings.SUPER_ADMIN_EMAIL.lower())
            if not existing:
                logger.info(f"Seeding Super Admin: {settings.SUPER_ADMIN_EMAIL}")
                await create_user(
                    session=session,
                    name=settings.SUPER_ADMIN_NAME or "Super Admin",
                    email=settings.SUPER_ADMIN_EMAIL,
                    password=settings.SUPER_ADMIN_PASSWORD,
                    role=UserRole.Admin,
                )
                logger.success("Super Admin created successfully.")
            else:
                logger.info("Super Admin already exists. Skipping.")
    except Exception:
        logger.exception("Super Admin seeding failed.")

    logger.success("Backend startup completed successfully.")


# ------------------------------------------------------------
# ROOT HEALTH CHECK
# ------------------------------------------------------------
@app.get("/", tags=["System"])
async def root():
    return {
        "status": "ok",
        "service": "Business Console Backend",
        "version": app.version,
    }
