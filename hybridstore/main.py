from fastapi import FastAPI, Request
import os
import logging
from dotenv import load_dotenv

from .api.database import router as database_router
from .api.errors import register_error_handlers
from .api.files import router as files_router
from .api.storage import router as storage_router
from .storage.factory import create_default_services, StorageConfigurationError

# Load environment variables
load_dotenv()

# Set up logging
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Hybrid Storage Coordinator",
    description="Database failover and multi-provider file storage for the accounting dashboard",
    version="1.0.0"
)

# Initialize storage services on startup
@app.on_event("startup")
async def startup_event():
    """Initialize storage services and attach to application state."""
    try:
        services = create_default_services()
        app.state.services = services
        app.state.failover = services.failover
        app.state.coordinator = services.coordinator
        logger.info("Storage services initialized successfully")
    except StorageConfigurationError as e:
        logger.error(f"Failed to initialize storage services: {e}")
        raise RuntimeError(f"Storage initialization failed: {e}") from e

@app.on_event("shutdown")
async def shutdown_event():
    """Stop background workers and release database connections."""
    services = getattr(app.state, "services", None)
    if services is not None:
        services.shutdown()
        logger.info("Storage services shut down")

register_error_handlers(app)

# Include API routers
app.include_router(database_router)
app.include_router(storage_router)
app.include_router(files_router)

@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and deployment validation"""
    return {
        "status": "healthy",
        "service": "hybrid-storage-coordinator",
        "version": "1.0.0"
    }

@app.get("/debug/health/cache", include_in_schema=False, tags=["Debug"])
async def health_cache_stats(request: Request):
    """
    Get provider health cache statistics.

    **Development and Testing Purpose Only**

    This endpoint provides internal cache statistics for development,
    debugging, and testing purposes. It should not be used in production
    applications and may be removed or restricted in future versions.
    """
    coordinator = request.app.state.coordinator
    return coordinator.get_cache_stats()

if __name__ == "__main__":
    import uvicorn
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    debug = os.getenv("DEBUG", "False").lower() == "true"

    uvicorn.run("hybridstore.main:app", host=host, port=port, reload=debug)
