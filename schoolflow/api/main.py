import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from schoolflow.core.approval import ApprovalService, PolicyResolver, RequestStore
from schoolflow.core.config import get_settings
from schoolflow.core.logging import setup_logger
from schoolflow.db.session import build_engine, build_session_factory
from schoolflow.api.routers import approvals, health, workflows
from schoolflow.services import NotificationService

logger = logging.getLogger(__name__)


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """Build the API application.

    The database engine is created when the app starts (unless one is passed
    in) and disposed at shutdown. Everything that needs it reaches it through
    ``app.state``.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logger(
            "schoolflow",
            level=settings.log_level,
            log_dir=settings.log_dir if settings.log_to_file else None,
        )
        owns_engine = engine is None
        db_engine = build_engine() if owns_engine else engine
        session_factory = build_session_factory(db_engine)

        notifiers = []
        if settings.notifications_enabled:
            notifiers.append(NotificationService(session_factory))

        app.state.engine = db_engine
        app.state.session_factory = session_factory
        app.state.approval_service = ApprovalService(
            RequestStore(session_factory),
            PolicyResolver(
                expense_escalation_threshold=settings.expense_escalation_threshold,
                default_sla_hours=settings.default_sla_hours,
            ),
            notifiers=notifiers,
        )
        logger.info(f"{settings.app_name} started ({db_engine.dialect.name})")
        try:
            yield
        finally:
            if owns_engine:
                db_engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Multi-level approval workflows for schools",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(approvals.router, prefix="/api")
    app.include_router(workflows.router, prefix="/api")
    app.include_router(health.router)
    app.include_router(health.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_app()
