"""
CRM API - Main Server
Contacts and companies with a consistent two-way membership link
"""
from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
import logging

# Configuration and Database
from config import ENVIRONMENT, LOG_LEVEL
from database import close_db, ensure_indexes

from services.errors import NotFoundError, PersistenceError

# Import routers
from routers.contacts import router as contacts_router
from routers.companies import router as companies_router

# Configure logging
logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(title="CRM API")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    # Covers ValidationMismatchError as well
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Database operation failed"})


# Create main API router
api_router = APIRouter(prefix="/api")

@api_router.get("/health")
async def health():
    return {"success": True, "message": "CRM API is running", "env": ENVIRONMENT}

# Include all routers
api_router.include_router(contacts_router)
api_router.include_router(companies_router)

app.include_router(api_router)


@app.on_event("startup")
async def startup_event():
    """Create database indexes on app startup"""
    await ensure_indexes()

@app.on_event("shutdown")
async def shutdown_db_client():
    """Close DB on shutdown"""
    await close_db()
