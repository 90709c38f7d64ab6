import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

import config
from app.routers.chat import api as chat_api
from app.routers.rewards import api as rewards_api
from app.services.earning_batch_service import default_earning_batcher
from core.errors import ChatServiceError
from core.logging import RequestLoggingMiddleware, configure_logging

configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the earning batch scheduler; flush what is left on shutdown."""
    if config.EARNING_BATCH_ENABLED:
        default_earning_batcher.start()
        logger.info(
            f"Earning batcher started (flush every {config.EARNING_BATCH_FLUSH_SECONDS}s)"
        )
    logger.info(f"{config.APP_NAME} started successfully")

    yield

    if config.EARNING_BATCH_ENABLED:
        await default_earning_batcher.shutdown()
        logger.info("Earning batcher stopped")


app = FastAPI(
    title=config.APP_NAME,
    description="Coin-metered chat, gifts, intimacy levels and daily rewards",
    version=config.APP_VERSION,
    lifespan=lifespan,
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description="""
        ## Authentication
        All endpoints except / and /health require a Descope session JWT.

        Format: `Authorization: Bearer <session_token>`

        ## Errors
        Failures return `{"status": "fail", "reason": ..., "message": ...}` where
        `reason` is one of `validation`, `not_found`, `blocked`, `forbidden` or
        `insufficient_balance`.
        """,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    openapi_schema["security"] = [{"bearerAuth": []}]
    app.openapi_schema = openapi_schema
    return openapi_schema


app.openapi = custom_openapi


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"status": "fail", "reason": "validation", "message": message},
    )


# Request logging middleware (before CORS so it logs all requests)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"]
)

app.include_router(chat_api.router, prefix="/api/v1")
app.include_router(rewards_api.router, prefix="/api/v1")


@app.get("/")
async def read_root():
    """
    Root endpoint to check if the server is running.
    Returns basic API information.
    """
    return {
        "status": "online",
        "message": f"Welcome to {config.APP_NAME}!",
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
