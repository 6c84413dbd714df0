"""
TFootwear Backend Application.

FastAPI application for the TFootwear store: catalog, cart, orders,
Pesapal/M-Pesa payments and shipping.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger

from tfootwear.api.v1 import router as api_v1_router
from tfootwear.core.config import settings
from tfootwear.core.database import close_db, create_database, init_db
from tfootwear.core.exceptions import register_exception_handlers
from tfootwear.core.logging import setup_logging
from tfootwear.core.security import create_redis
from tfootwear.modules.payments import MpesaClient, PesapalClient


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting TFootwear Backend...")

    # Initialize database
    database = create_database()
    await init_db(database)
    app.state.database = database

    # Shared clients
    app.state.redis = create_redis()
    app.state.pesapal = PesapalClient()
    app.state.mpesa = MpesaClient()

    logger.info("TFootwear Backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down TFootwear Backend...")

    await app.state.pesapal.close()
    await app.state.mpesa.close()
    await app.state.redis.aclose()
    await close_db(database)

    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        TFootwear E-commerce API

        ## Features

        - **Catalog**: Categories, products and search
        - **Cart & Orders**: Checkout with atomic stock handling
        - **Payments**: Pesapal and M-Pesa
        - **Shipping**: Delivery details and tracking

        ## Documentation

        - [API Docs](/docs) - Interactive Swagger UI
        - [ReDoc](/redoc) - Alternative documentation
        """,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include API router
    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {
            "status": "healthy",
            "version": settings.app_version,
        }

    @app.get("/", tags=["System"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "api": settings.api_v1_prefix,
        }

    return app


app = create_app()
