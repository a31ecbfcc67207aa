"""bankbridge - FastAPI application brokering Plaid calls for connected banks."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError

from bankbridge.core.config import CORS_ORIGINS, HOST, PORT
from bankbridge.core.database import engine, init_models
from bankbridge.core.errors import BankBridgeError
from bankbridge.core.logging_config import setup_logging
from bankbridge.core.middleware import OptionsMiddleware, RequestLoggingMiddleware
from bankbridge.routers import banks, plaid
from bankbridge.services.plaid_service import close_plaid_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_models()
    yield
    close_plaid_client()
    await engine.dispose()


app = FastAPI(
    title="bankbridge",
    description="Plaid link, token exchange and transaction sync for connected banks",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
# Outermost, so CORS preflight responses are also emptied
app.add_middleware(OptionsMiddleware)


@app.exception_handler(BankBridgeError)
async def bankbridge_error_handler(request: Request, exc: BankBridgeError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    content = {"error": exc.message}
    if exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    logger.warning(f"{request.method} {request.url.path} -> 400: invalid {fields}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"Missing or invalid fields: {', '.join(fields)}"},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Database error", "details": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


app.include_router(plaid.router)
app.include_router(banks.router)
app.include_router(banks.router, prefix="/api", include_in_schema=False)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run("bankbridge.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    run()
