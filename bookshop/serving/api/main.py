"""
FastAPI Application Factory

Creates and configures the API application.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from bookshop.config import get_settings
from bookshop.database.connection import close_database, init_database
from bookshop.exceptions import BookshopError
from bookshop.serving.api.middleware import RequestLoggingMiddleware
from bookshop.serving.api.routes import (
    customers_router,
    health_router,
    orders_router,
    products_router,
    reports_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    from bookshop.config.logging import configure_logging
    configure_logging()

    logger.info("Starting Bookshop Orders API")

    try:
        await init_database()
    except Exception as e:
        logger.warning("Database init failed", error=str(e))

    yield

    logger.info("Shutting down")
    await close_database()


async def bookshop_error_handler(request: Request, exc: BookshopError) -> JSONResponse:
    """Map the domain error taxonomy onto HTTP responses."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        error=exc.code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_api_app(with_lifespan: bool = True, title: Optional[str] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        with_lifespan: Initialize logging and the database on startup
        title: Override the OpenAPI title

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title=title or "Bookshop Orders API",
        description="Atomic order creation, sales history, reporting and recommendations",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan if with_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(BookshopError, bookshop_error_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
    app.include_router(customers_router, prefix="/api/v1/customers", tags=["Customers"])
    app.include_router(products_router, prefix="/api/v1/products", tags=["Products"])
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["Reports"])

    return app
