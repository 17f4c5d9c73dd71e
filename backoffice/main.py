"""
Back Office FastAPI Main Application
Entry point for the ledger, reconciliation and shipping REST API
"""
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from backoffice.api.v1.api_router import api_router
from backoffice.core.config import settings
from backoffice.core.database import check_db_connection, init_db
from backoffice.core.exceptions import (
    BackOfficeException, BusinessLogicError, IntegrationError, NotFoundError, ValidationError
)
from backoffice.core.logging import get_logger, setup_logging

setup_logging()
logger = get_logger("api")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Back Office Ledger API

    Inventory ledger, client balance reconciliation and shipping fulfilment
    for a small retail and wholesale business.

    ### Key Features:
    - **Inventory Ledger**: every stock change recorded with a before/after snapshot
    - **Product History**: sales, purchases and adjustments per product, variant and client
    - **Balance Reconciliation**: replay invoices and receipts to verify stored balances
    - **Shipping**: partial shipments against invoices with derived fulfilment status
    - **Analytics**: sales, inventory value, top sellers and stock movement series
    """,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trusted host middleware for production
if not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    try:
        db_status = check_db_connection()

        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
            "debug": settings.DEBUG
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


# System information endpoint
@app.get("/info", tags=["System"])
async def system_info():
    """
    System information endpoint
    """
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_version": "v1",
        "docs_url": settings.DOCS_URL,
        "features": [
            "Inventory Ledger",
            "Product History",
            "Client Balance Reconciliation",
            "Shipping Invoices",
            "Analytics"
        ],
        "currency": settings.DEFAULT_CURRENCY,
        "balance_tolerance": str(settings.BALANCE_TOLERANCE),
    }


# Application startup event
@app.on_event("startup")
async def startup_event():
    """
    Verify the database and create tables when configured to
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection():
        logger.error("Failed to connect to database on startup")
        raise RuntimeError("Database connection failed")

    logger.info("Database connection established")

    if settings.AUTO_CREATE_TABLES:
        init_db()

    logger.info("Application startup completed successfully")


# Application shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")


def _error_response(status_code: int, error: str, exc: BackOfficeException, **extra) -> JSONResponse:
    content = {"error": error, "detail": str(exc)}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, "Not found", exc)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation failed", exc, errors=exc.errors
    )


@app.exception_handler(BusinessLogicError)
async def business_logic_handler(request: Request, exc: BusinessLogicError):
    logger.info(f"Refused {request.method} {request.url.path}: {exc}")
    return _error_response(status.HTTP_409_CONFLICT, "Business rule violated", exc)


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    logger.error(f"Integration failure on {request.method} {request.url.path}: {exc}")
    return _error_response(status.HTTP_502_BAD_GATEWAY, "Upstream service failed", exc)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "type": "server_error"
        }
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backoffice.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
