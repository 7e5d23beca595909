from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import (
    access, admin, auth, billing, daily_plan, market_replay, profile, psychologist, risk, store,
    trader_profile, trades, trading_setups, webhooks
)

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting TraderShark API")
    await database.connect()

    if not os.environ.get("KIRVANO_WEBHOOK_TOKEN"):
        logger.error("KIRVANO_WEBHOOK_TOKEN is not set. Payment webhooks will be rejected.")
    if not os.environ.get("LLM_API_KEY"):
        logger.warning("LLM_API_KEY is not set. AI features will return 503.")

    # Idempotent operator seed from OPERATOR_EMAIL
    from services.role_service import run_seed_operator_role
    result = await run_seed_operator_role()
    logger.info("Operator seed: %s (%s)", result["action"], result["message"])

    yield

    # Shutdown
    logger.info("Shutting down TraderShark API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="TraderShark API",
    description="Trading journal, AI coaching and plan management for day traders",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(access.router)
app.include_router(billing.router)
app.include_router(webhooks.router)  # Kirvano payment notifications
app.include_router(admin.router)
app.include_router(store.router)
app.include_router(store.admin_router)
app.include_router(trades.router)
app.include_router(daily_plan.router)
app.include_router(psychologist.router)
app.include_router(risk.router)
app.include_router(trader_profile.router)
app.include_router(trading_setups.router)
app.include_router(market_replay.router)

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": "TraderShark",
        "version": "1.0.0",
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }

# Validation error handler: log request_id + field locations
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(errors), "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
