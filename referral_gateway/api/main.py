"""FastAPI application factory"""

import logging
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import Response

from referral_gateway.api.dependencies import get_request_id
from referral_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from referral_gateway.api.v1 import fraud, purchases, referral_codes, rewards
from referral_gateway.domain.exceptions import StoreUnavailable
from referral_gateway.infrastructure.database.session import get_db
from referral_gateway.infrastructure.observability.logging import setup_logging
from referral_gateway.infrastructure.observability.metrics import store_failures_counter
from referral_gateway.config import settings

setup_logging(settings.log_level, service_name=settings.service_name)


async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    """Record store outages fail closed with 503, never as a rejection"""
    store_failures_counter.inc()
    logging.error(f"Record store error: {exc}", extra={"request_id": get_request_id(request)})
    return JSONResponse(status_code=503, content={"detail": "Record store unavailable"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Referral Gateway",
        description="Referral purchase validation, fraud scoring and pending rewards",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added runs first: request id is set before metrics are taken
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)

    @app.get("/health")
    def health_check(db: Session = Depends(get_db)):
        """Liveness plus a round-trip to the record store"""
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logging.warning(f"Health check could not reach the record store: {e.__class__.__name__}")
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "service": settings.service_name, "database": "unavailable"},
            )
        return {"status": "ok", "service": settings.service_name, "database": "ok"}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(referral_codes.router, prefix="/v1", tags=["referral-codes"])
    app.include_router(purchases.router, prefix="/v1", tags=["purchases"])
    app.include_router(rewards.router, prefix="/v1", tags=["rewards"])
    app.include_router(fraud.router, prefix="/v1", tags=["fraud"])

    return app


app = create_app()
