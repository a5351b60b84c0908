"""
Smart Locator API - address verification with per-client credits

App wiring: routers under /api, CORS, logging, exception handlers and
database startup checks.
"""
from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from datetime import datetime, timezone
import os
import logging

from database import client, create_indexes, check_db_connection
from credit_wallet.config import ERROR_CODES
from routes.admin import admin_router
from routes.bulk_jobs import bulk_jobs_router
from routes.client import client_router
from routes.inbox import inbox_router
from routes.support import support_router
from routes.verify import verify_router
from utils.errors import StoreUnavailableError, ExternalServiceError, ClientNotFoundError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(title="Smart Locator - Address Verification API")

api_router = APIRouter(prefix="/api")


@api_router.get("/")
async def root():
    return {"message": "Smart Locator API - Address Verification", "version": "1.0.0"}


@api_router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


api_router.include_router(client_router, prefix="/client")
api_router.include_router(verify_router)
api_router.include_router(admin_router, prefix="/admin")
api_router.include_router(inbox_router, prefix="/inbox")
api_router.include_router(support_router)
api_router.include_router(bulk_jobs_router)

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=[origin.strip() for origin in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:3000').split(',')],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"status": "Error", "message": "Database unavailable."})


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"status": "Error", "message": ERROR_CODES["SERVICE_FAILURE"], "error": exc.reason}
    )


@app.exception_handler(ClientNotFoundError)
async def client_not_found_handler(request: Request, exc: ClientNotFoundError):
    return JSONResponse(status_code=404, content={"status": "Error", "message": "Client not found."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"status": "Error", "message": "Internal Server Error"})


# ==================== LIFECYCLE ====================

@app.on_event("startup")
async def startup():
    # Check database connection first - fail fast if database is unavailable
    db_ok, db_error = await check_db_connection()
    if not db_ok:
        logger.critical(f"Database connection failed on startup: {db_error}")
        raise RuntimeError(
            f"Cannot start application - database connection failed: {db_error}")

    await create_indexes()
    logger.info("Smart Locator API started")


@app.on_event("shutdown")
async def shutdown_db_client():
    # Close MongoDB client
    client.close()
    logger.info("MongoDB client closed")
