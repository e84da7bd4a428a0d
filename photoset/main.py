"""
Photoset generation API.
Serves generation start/status, the payment gateway webhook, health checks and metrics.
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from photoset.core.config import settings
from photoset.core.errors import ErrorCode, ServiceError
from photoset.core.logging import configure_logging
from photoset.api.routes import generate, health, payments
from photoset.utils.metrics import router as metrics_router

configure_logging()
logger = logging.getLogger("photoset.api")

app = FastAPI(
    title="Photoset API",
    description="AI photoset generation: paid job orchestration with automatic refunds",
    version="1.0.0",
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def access_log(request: Request, call_next):
    started = time.monotonic()
    response = await call_next(request)
    logger.info(
        "http_request",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": round((time.monotonic() - started) * 1000, 1),
        },
    )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            extra={"path": request.url.path, "error": exc.code.value, "status_code": exc.status_code},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    error = ServiceError(
        "Некорректный запрос",
        code=ErrorCode.VALIDATION_ERROR,
        details={"fields": fields},
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(generate.router)
app.include_router(payments.router)
app.include_router(metrics_router)
