"""FastAPI application factory"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from sacco_admin.api.errors import register_exception_handlers
from sacco_admin.api.middleware import RequestIDMiddleware, MetricsMiddleware
from sacco_admin.api.v1 import analytics, auth, credit, notifications, repayments, users
from sacco_admin.infrastructure.observability.logging import setup_logging
from sacco_admin.config import settings
from sacco_admin.utils.date_utils import utcnow

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="SACCO Admin API",
        description="Admin back-office for savings and credit: auth, users, credit workflow, analytics",
        version="0.1.0",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name, "timestamp": utcnow().isoformat()}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    prefix = settings.api_prefix
    app.include_router(auth.router, prefix=f"{prefix}/admin/auth", tags=["auth"])
    app.include_router(auth.member_router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(users.router, prefix=f"{prefix}/admin/users", tags=["users"])
    app.include_router(analytics.savings_router, prefix=f"{prefix}/admin/savings", tags=["savings"])
    app.include_router(analytics.router, prefix=f"{prefix}/admin/analytics", tags=["analytics"])
    app.include_router(credit.router, prefix=f"{prefix}/admin/credit", tags=["credit"])
    app.include_router(repayments.router, prefix=f"{prefix}/credit", tags=["repayments"])
    app.include_router(notifications.router, prefix=f"{prefix}/admin/notifications", tags=["notifications"])

    return app


app = create_app()
