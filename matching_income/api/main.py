"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from matching_income.api.errors import http_exception_handler
from matching_income.api.middleware import RequestIDMiddleware, MetricsMiddleware
from matching_income.api.v1 import leg_balance, matching_income, members, sales
from matching_income.infrastructure.observability.logging import setup_logging
from matching_income.services.locks import MemberLocks
from matching_income.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Matching Income Engine",
        description="Binary matching income: leg balances, matching bonuses and payout lifecycle",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.member_locks = MemberLocks()
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(members.router, prefix="/v1", tags=["members"])
    app.include_router(sales.router, prefix="/v1", tags=["sales"])
    app.include_router(matching_income.router, prefix="/v1", tags=["matching-income"])
    app.include_router(leg_balance.router, prefix="/v1", tags=["leg-balance"])

    return app


app = create_app()
