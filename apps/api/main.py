"""
Streaming Catalog API - FastAPI Backend
Main application entry point: catalog, video ingestion, payments and access checks.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import init_schema
import models  # noqa: F401
from routers import (
    health,
    auth,
    movies,
    series,
    media,
    payments,
    access,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Streaming Catalog API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            await init_schema()
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    yield
    # Shutdown
    print("👋 Shutting down API...")


app = FastAPI(
    title="Streaming Catalog API",
    description="Catalog metadata, Mux video ingestion, ImageKit posters and Razorpay subscriptions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, tags=["Authentication"])
app.include_router(movies.router, tags=["Movies"])
app.include_router(series.router, tags=["Series"])
app.include_router(media.router, tags=["Ingestion"])
app.include_router(payments.router, tags=["Payments"])
app.include_router(access.router, tags=["Access"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Streaming Catalog API",
        "version": "0.1.0",
        "status": "running"
    }
