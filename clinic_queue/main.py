from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, InterfaceError
import time
import logging
import os

from .api.v1.queue import router as queue_router
from .api.v1.patients import router as patients_router
from .api.ws import router as ws_router
from .core.config import settings
from .core.database import init_db
from .core.errors import QueueError, StoreUnavailableError
from .services.broadcaster import broadcaster

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Front-desk ticketing and live patient queue for clinics",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Middleware setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Test clients use arbitrary hosts
if not os.getenv("TESTING"):
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"]
    )

# Custom middleware for request logging and timing
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.4f}s"
    )

    return response

def _error_response(request: Request, status_code: int, error: str, message: str):
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "path": str(request.url.path)
        }
    )

# Exception handlers
@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    if isinstance(exc, QueueError):
        return _error_response(request, 404, exc.error, exc.detail)
    return _error_response(request, 404, "Not Found", "The requested resource was not found")

@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError):
    return _error_response(request, exc.status_code, exc.error, exc.detail)

@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def store_unavailable_handler(request: Request, exc: Exception):
    logger.error(f"Queue storage unavailable: {str(exc)}")
    unavailable = StoreUnavailableError()
    return _error_response(request, unavailable.status_code, unavailable.error, unavailable.detail)

@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {str(exc)}")
    return _error_response(request, 500, "Internal Server Error", "An unexpected error occurred")

# Include routers
app.include_router(queue_router, prefix="/api/v1")
app.include_router(patients_router, prefix="/api/v1")
app.include_router(ws_router)

# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting Clinic Queue Service...")

    init_db()

    await broadcaster.start()
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown."""
    logger.info("Shutting down Clinic Queue Service...")
    await broadcaster.stop()

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.VERSION,
        "subscribers": broadcaster.subscriber_count
    }

@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "endpoints": {
            "queue": "/api/v1/queue",
            "patients": "/api/v1/patients",
            "live_updates": "/ws/queue",
            "docs": "/docs",
            "openapi": "/api/v1/openapi.json"
        },
        "status_poll_interval_seconds": settings.STATUS_POLL_INTERVAL_SECONDS
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinic_queue.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
