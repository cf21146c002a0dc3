import logging

import uvicorn
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from shortlinks import crud, models, schemas
from shortlinks.app_factory import build_app, public_base_url
from shortlinks.auth import CurrentUser, get_current_user, get_optional_user
from shortlinks.config import Settings, load_settings
from shortlinks.database import get_db
from shortlinks.observability import Metrics, get_metrics

SERVICE_NAME = "url-shortener-service"
SERVICE_VERSION = "0.1.0"

logger = logging.getLogger("shortlinks.api")

router = APIRouter()


def link_out(link: models.ShortLink, request: Request, model=schemas.UrlInfoOut):
    fields = {
        "id": link.id,
        "short_code": link.code,
        "short_url": f"{public_base_url(request)}/{link.code}",
        "original_url": link.original_url,
        "click_count": link.click_count,
        "created_at": link.created_at,
        "updated_at": link.updated_at,
    }
    return model(**{name: fields[name] for name in model.model_fields})


@router.post("/shorten", response_model=schemas.ShortUrlOut, status_code=status.HTTP_201_CREATED)
def shorten(
    payload: schemas.ShortenRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser | None = Depends(get_optional_user),
    metrics: Metrics = Depends(get_metrics),
):
    link = crud.create_link(
        db,
        payload.original_url,
        owner_id=user.user_id if user else None,
        code_length=request.app.state.settings.code_length,
    )
    metrics.url_created(authenticated=user is not None)
    return link_out(link, request, schemas.ShortUrlOut)


@router.get("/info/{code}", response_model=schemas.UrlInfoOut)
def url_info(code: str, request: Request, db: Session = Depends(get_db)):
    return link_out(crud.get_info(db, code), request)


@router.get("/my-urls", response_model=list[schemas.UserUrlOut])
def my_urls(
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return [link_out(link, request, schemas.UserUrlOut) for link in crud.list_owned(db, user.user_id)]


@router.put("/my-urls/{link_id}", response_model=schemas.UserUrlOut)
def update_my_url(
    link_id: str,
    payload: schemas.UpdateUrlRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    link = crud.update_owned(db, user.user_id, link_id, payload.original_url)
    return link_out(link, request, schemas.UserUrlOut)


@router.delete("/my-urls/{link_id}", response_model=schemas.MessageOut)
def delete_my_url(
    link_id: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    crud.delete_owned(db, user.user_id, link_id)
    return schemas.MessageOut(message="URL deleted successfully")


# Catch-all; must stay registered after every fixed path
@router.get("/{code}", include_in_schema=False)
def redirect(
    code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    metrics: Metrics = Depends(get_metrics),
):
    link = crud.resolve(db, code)
    # Runs after the response is sent, on its own session
    background_tasks.add_task(crud.record_click, request.app.state.session_factory, link.id)
    metrics.url_clicked()
    return RedirectResponse(url=link.original_url, status_code=status.HTTP_302_FOUND)


def create_app(settings: Settings | None = None) -> FastAPI:
    app = build_app(
        settings or load_settings(),
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        title="URL Shortener",
        description="Create short links, redirect through them and count clicks.",
    )
    app.include_router(router)
    return app


def run():
    uvicorn.run("shortlinks.main:create_app", factory=True, host="0.0.0.0", port=8000)
