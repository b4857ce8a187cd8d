"""
Factora Scoring & Audit Core — FastAPI Application Entry Point

POST /v1/scores/evaluate  → score + risk band for a factor mapping
/v1/models                → scoring model registry (audited writes)
/v1/personas              → personas, transactions, recorded scores
GET  /v1/audit            → append-only audit trail
GET  /v1/verification     → advisory infrastructure report
GET  /v1/health           → health check
GET  /docs                → OpenAPI / Swagger UI
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import IntegrityError

from factora.api.audit_endpoint import router as audit_router
from factora.api.persona_endpoint import router as persona_router
from factora.api.registry_endpoint import router as registry_router
from factora.api.score_endpoint import router as score_router
from factora.api.verification_endpoint import router as verification_router
from factora.core.config import get_settings
from factora.core.errors import FactoraError

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if get_settings().app_env == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
)
logger = structlog.get_logger()

ERROR_STATUS = {
    "UnknownModel": 404,
    "UnknownPersona": 404,
    "InvalidRange": 422,
    "InvalidOperation": 422,
    "Timeout": 504,
    "AuditWriteFailure": 503,
    "AuditImmutable": 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        "scoring_core_starting",
        app_env=settings.app_env,
        active_model_id=str(settings.active_model_id) if settings.active_model_id else None,
        clamp_policy=settings.score_clamp_policy.value,
    )
    yield
    logger.info("scoring_core_shutting_down")


app = FastAPI(
    title="Factora Scoring & Audit Core",
    description="Weighted-factor credit scoring with an append-only audit trail",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (dashboard + internal tools) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_methods=["POST", "GET", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

# ── Prometheus metrics ──
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


# ── Error mapping ──

@app.exception_handler(FactoraError)
async def factora_error_handler(request: Request, exc: FactoraError):
    status = ERROR_STATUS.get(exc.code, 500)
    log = logger.warning if status < 500 else logger.error
    log("request_failed", path=request.url.path, error=exc.code, message=exc.message)
    return JSONResponse(
        status_code=status,
        content={"error": exc.code, "message": exc.message, "retryable": exc.retryable, "context": exc.context},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("request_conflict", path=request.url.path, error=str(exc.orig))
    return JSONResponse(
        status_code=409,
        content={"error": "Conflict", "message": str(exc.orig), "retryable": False, "context": {}},
    )


# ── Routes ──
app.include_router(score_router)
app.include_router(registry_router)
app.include_router(persona_router)
app.include_router(audit_router)
app.include_router(verification_router)


@app.get("/v1/health", tags=["health"])
def health():
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "active_model_id": str(settings.active_model_id) if settings.active_model_id else None,
    }


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": get_settings().app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "evaluate": "POST /v1/scores/evaluate",
    }
