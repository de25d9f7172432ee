from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from orderhub.config import settings
from orderhub.api.v1.router import api_router
from orderhub.core.exceptions import InvalidRequestError, OrderHubError
from orderhub.database import init_db, async_session_factory


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables when AUTO_CREATE_TABLES is set (development databases)
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.AUTO_CREATE_TABLES:
        await init_db()

    yield

    # Shutdown
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Orders", "description": "Order quotes, placement and status lifecycle"},
    {"name": "Cashback", "description": "Cashback wallets, credits, redemptions and ledger history"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

API_DESCRIPTION = """
## Order Pricing, Promotion & Cashback

- **Quotes**: price an order draft with supplier campaigns and payment conditions
- **Orders**: place orders and move them through their lifecycle
- **Cashback**: per-organization wallets with an append-only ledger

### Error Responses

| Code | Meaning |
|------|---------|
| 400 | Invalid request, invalid amount or insufficient cashback balance |
| 401 | Missing X-User-Id header |
| 403 | Acting organization may not change this order |
| 404 | Order or product not found |
| 409 | Status change not allowed from the current status |
| 503 | Storage failure; the operation was rolled back and may be retried |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(OrderHubError)
async def orderhub_exception_handler(request: Request, exc: OrderHubError):
    """Render domain errors with their HTTP status and error code."""
    if exc.retryable:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")

    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies, paths and queries share the INVALID_REQUEST shape."""
    error = InvalidRequestError(
        "Request validation failed",
        {"errors": [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]},
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Global exception handler; internals are logged, never returned
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "error_code": "INTERNAL_ERROR",
            "details": {},
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus a round trip to the orders database."""
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unavailable"})

    return {"status": "healthy", "version": settings.APP_VERSION, "database": "connected"}
