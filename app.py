# app.py
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException

from admin.routes import router as admin_router
from components import dashboard, earnings, investments, labels, notifications, wallet
from core.database import close_db, init_db, ping_db
from core.errors import StorageError, setup_error_handling
from core.rate_limiter_slowapi import check_redis_health, setup_rate_limiting

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

app = FastAPI(
    title="NewsEarn Rewards Backend",
    description="Wallet, levels, labels and investment payouts for the news rewards app.",
    version="1.0.0"
)

# Setup rate limiting and engine error responses
setup_rate_limiting(app)
setup_error_handling(app)


@app.on_event("startup")
async def on_startup():
    logger.info("Initializing database connection...")
    await init_db()
    logger.info("Database connection successful.")

    if await check_redis_health():
        logger.info("Redis connection successful - rate limiting shared across instances")
    else:
        logger.info("Redis not configured or unreachable - rate limiting uses local storage")

    logger.info("🚀 Rewards backend is ready")


@app.on_event("shutdown")
async def on_shutdown():
    logger.info("Shutting down rewards backend...")
    await close_db()


# --- Include Component Routers ---
app.include_router(wallet.router)
app.include_router(earnings.router)
app.include_router(labels.router)
app.include_router(investments.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)

# Include admin router
app.include_router(admin_router)


@app.get("/api/timestamp", response_model=dict)
async def get_server_time():
    """Server time; clients use it to know when the next daily claim opens."""
    return {"timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers."""
    try:
        await ping_db()
    except StorageError:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "error": "Database connection failed"
            }
        )

    redis_status = "connected" if await check_redis_health() else "disconnected"
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
        "database": "connected",
        "redis": redis_status
    }


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the NewsEarn Rewards API v1!"}
