"""Wiring shared by both services."""

from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from shortlinks import database, schemas
from shortlinks.config import Settings
from shortlinks.errors import install_error_handlers
from shortlinks.observability import Metrics, RequestMetricsMiddleware, get_metrics, setup_logging


def build_app(
    settings: Settings,
    service: str,
    version: str,
    title: str,
    description: str,
) -> FastAPI:
    """Create a FastAPI app with db, metrics, logging and error handling attached.

    Raises RuntimeError when no token signing key is configured.
    """
    if not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET is not set")

    logger = setup_logging(settings.log_level)

    engine = database.make_engine(settings.database_url)
    # MVP: create tables automatically
    database.Base.metadata.create_all(bind=engine)

    app = FastAPI(title=title, description=description, version=version)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = database.make_session_factory(engine)
    app.state.metrics = Metrics(service)

    # --- CORS (allow frontend dev servers, etc.) ---
    origins = ["*"] if settings.environment == "dev" else [
        settings.public_base_url or "http://localhost:8000",
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestMetricsMiddleware, metrics=app.state.metrics)
    install_error_handlers(app)

    @app.get("/health", response_model=schemas.HealthOut)
    def health():
        return schemas.HealthOut(
            status="OK",
            service=service,
            version=version,
            timestamp=datetime.now(timezone.utc),
        )

    @app.get("/metrics", include_in_schema=False)
    def metrics_endpoint(metrics: Metrics = Depends(get_metrics)):
        body, content_type = metrics.render()
        return Response(content=body, media_type=content_type)

    logger.info("%s %s starting (env=%s)", service, version, settings.environment)
    return app


def public_base_url(request: Request) -> str:
    settings: Settings = request.app.state.settings
    return settings.public_base_url or str(request.base_url).rstrip("/")
