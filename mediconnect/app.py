"""
Main Application - MediConnect Reports API

FastAPI web application exposing the clinic report generation and export
endpoints.

Author: MediConnect Team
"""

# ============================================================================
# IMPORTS
# ============================================================================
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from . import __version__
from .config import config
from .database import get_database_manager
from .reports import reports_router

# Global state
app_state = {
    "db_manager": None,
}

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    if app_state.get("db_manager") is None:
        app_state["db_manager"] = get_database_manager()
    logger.info(f"{config.reports.app_name} reports API started ({config.environment.value})")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if app_state.get("db_manager"):
        try:
            app_state["db_manager"].close()
            logger.info("Database connections closed")
        except Exception as e:
            logger.error(f"Error closing database connections: {e}")


# Create FastAPI app
app = FastAPI(
    title=f"{config.reports.app_name} Reports",
    description="Report generation and export for clinic administration",
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.web.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    try:
        db_manager = app_state["db_manager"]
        with db_manager.pool.get_connection() as conn:
            conn.execute("SELECT 1").fetchone()

        return {
            "status": "healthy",
            "database": "connected",
            "timestamp": datetime.now().isoformat()
        }

    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
            "timestamp": datetime.now().isoformat()
        }


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler for unhandled errors"""
    logger.error(
        f"Unhandled Exception: {request.method} {request.url.path}\n"
        f"  Exception Type: {type(exc).__name__}\n"
        f"  Message: {str(exc)}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "An unexpected error occurred",
            "path": str(request.url.path)
        }
    )


# ============================================================================
# MAIN APPLICATION ENTRY POINT
# ============================================================================

def main():
    uvicorn.run(
        "mediconnect.app:app",
        host=config.web.host,
        port=config.web.port,
        reload=config.web.reload,
        log_level=config.web.log_level
    )


if __name__ == "__main__":
    main()
