from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from datetime import datetime
from app.core.config import settings
from app.core.exceptions import WatermarkError
from app.models.schemas import HealthCheckResponse
from app.routers import upload, watermark
from app.services.logo_service import logo_store

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Logo watermarking with size-aware re-encoding",
    debug=settings.debug
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(watermark.router)
app.include_router(upload.router)


@app.get("/", response_model=HealthCheckResponse)
async def root():
    """Health check endpoint"""
    return HealthCheckResponse(
        status="healthy",
        timestamp=datetime.now(),
        version=settings.api_version,
        logo_loaded=logo_store.is_loaded()
    )


@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Detailed health check endpoint, loads the logo if it is not cached yet"""
    try:
        logo_store.get_logo()
        status = "healthy"
    except WatermarkError as e:
        logger.error(f"Health check failed: {str(e)}")
        status = "degraded"
    return HealthCheckResponse(
        status=status,
        timestamp=datetime.now(),
        version=settings.api_version,
        logo_loaded=logo_store.is_loaded()
    )


@app.exception_handler(WatermarkError)
async def watermark_exception_handler(request, exc: WatermarkError):
    """Decode problems are the client's fault, everything else is ours"""
    logger.error(f"Watermark failed: {str(exc)}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
