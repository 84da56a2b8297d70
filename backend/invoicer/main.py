"""
FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from invoicer.config import API_VERSION, get_settings
from invoicer.db import create_db_and_tables
from invoicer.routes import auth, health, invoices, sources, user
from invoicer.utils.errors import AppError
from invoicer.utils.logger import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up and ensuring database tables...")
    await create_db_and_tables()
    logger.info("Startup complete.")
    yield


# Create FastAPI app
app = FastAPI(
    title="Invoicer",
    description="Invoices extracted from connected email accounts",
    version=API_VERSION,
    lifespan=lifespan,
)

# Get settings
settings = get_settings()

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render application errors as { error, code, message, details }."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(auth.router, prefix="/api/auth", tags=["Session"])
app.include_router(user.router, prefix="/api", tags=["User"])
app.include_router(sources.router, prefix="/api/sources", tags=["Sources"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["Invoices"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Invoicer API",
        "docs": "/docs",
        "health": "/api/health",
    }
