import logging

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, status
from sqlalchemy.orm import Session

from shortlinks import auth, models, schemas, users
from shortlinks.app_factory import build_app
from shortlinks.config import Settings, load_settings
from shortlinks.database import get_db
from shortlinks.errors import Conflict, Unauthorized
from shortlinks.observability import Metrics, get_metrics

SERVICE_NAME = "identity-service"
SERVICE_VERSION = "0.2.0"

logger = logging.getLogger("shortlinks.identity")

router = APIRouter(prefix="/auth", tags=["auth"])


def auth_response(user: models.User, settings: Settings) -> schemas.AuthOut:
    return schemas.AuthOut(
        access_token=users.issue_token(user, settings),
        token_type=auth.TOKEN_TYPE,
        expires_in=auth.ACCESS_TOKEN_TTL_LABEL,
        user=schemas.UserOut.model_validate(user),
    )


def get_current_account(
    request: Request,
    token: str | None = Depends(auth.oauth2_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    return users.validate_token(db, token, request.app.state.settings)


@router.post("/register", response_model=schemas.AuthOut, status_code=status.HTTP_201_CREATED)
def register(
    payload: schemas.RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    metrics: Metrics = Depends(get_metrics),
):
    settings: Settings = request.app.state.settings
    try:
        user = users.create_user(db, payload.email, payload.password, rounds=settings.bcrypt_rounds)
    except Conflict:
        metrics.auth_attempt("register", "conflict")
        raise
    metrics.auth_attempt("register", "success")
    return auth_response(user, settings)


@router.post("/login", response_model=schemas.AuthOut)
def login(
    payload: schemas.LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    metrics: Metrics = Depends(get_metrics),
):
    try:
        user = users.authenticate(db, payload.email, payload.password)
    except Unauthorized:
        metrics.auth_attempt("login", "failure")
        raise
    metrics.auth_attempt("login", "success")
    logger.info("User login successful: %s", user.id)
    return auth_response(user, request.app.state.settings)


@router.get("/me", response_model=schemas.UserOut)
def me(user: models.User = Depends(get_current_account)):
    return user


def create_app(settings: Settings | None = None) -> FastAPI:
    app = build_app(
        settings or load_settings(),
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        title="Identity Service",
        description="Register users, log them in and issue bearer tokens.",
    )
    app.include_router(router)
    return app


def run():
    uvicorn.run("shortlinks.identity:create_app", factory=True, host="0.0.0.0", port=8001)
