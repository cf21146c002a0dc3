import logging
import secrets
import string

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from shortlinks import models, validators
from shortlinks.errors import ExhaustedRetries, Forbidden, InvalidInput, NotFound

logger = logging.getLogger("shortlinks.crud")

ALPHABET = string.ascii_letters + string.digits
DEFAULT_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 5

# Paths the shortener serves itself; a generated code must not shadow them
RESERVED_CODES = {"", "docs", "redoc", "openapi.json", "health", "metrics",
                  "info", "shorten", "my-urls", "favicon.ico"}


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def get_link(db: Session, code: str) -> models.ShortLink | None:
    return db.scalars(
        select(models.ShortLink).where(
            models.ShortLink.code == code,
            models.ShortLink.deleted_at.is_(None),
        )
    ).first()


def get_link_by_id(db: Session, link_id: str) -> models.ShortLink | None:
    return db.scalars(
        select(models.ShortLink).where(
            models.ShortLink.id == link_id,
            models.ShortLink.deleted_at.is_(None),
        )
    ).first()


def create_link(
    db: Session,
    original_url: str,
    owner_id: str | None = None,
    code_length: int = DEFAULT_CODE_LENGTH,
) -> models.ShortLink:
    """Persist a new link under a freshly generated, unused short code.

    A code that is already live, reserved, or loses an insert race on the
    unique index counts as a collision. Any other integrity error (e.g. an
    unknown owner) propagates. After MAX_CODE_ATTEMPTS collisions
    the request fails with ExhaustedRetries.
    """
    if not validators.is_valid_url(original_url):
        raise InvalidInput("Invalid URL")

    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        code = generate_code(code_length)
        if code in RESERVED_CODES or get_link(db, code) is not None:
            logger.debug("Short code %s already taken (attempt %d)", code, attempt)
            continue

        link = models.ShortLink(code=code, original_url=original_url, owner_id=owner_id)
        db.add(link)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # Only a live row holding this code makes it a collision
            if get_link(db, code) is None:
                raise
            logger.warning("Short code %s claimed concurrently (attempt %d)", code, attempt)
            continue
        db.refresh(link)
        logger.info("Created link %s -> %s owner=%s", link.code, original_url, owner_id)
        return link

    logger.error("Could not generate unique code after %d attempts", MAX_CODE_ATTEMPTS)
    raise ExhaustedRetries("Could not generate unique code")


def resolve(db: Session, code: str) -> models.ShortLink:
    link = get_link(db, code)
    if link is None:
        raise NotFound("URL not found")
    return link


get_info = resolve


def record_click(session_factory: sessionmaker, link_id: str) -> None:
    """Bump the click counter and append a ClickEvent in one transaction.

    Runs after the redirect has been sent, so nothing here may raise:
    a link deleted in the meantime is skipped, other failures are logged.
    """
    try:
        with session_factory() as db, db.begin():
            result = db.execute(
                update(models.ShortLink)
                .where(
                    models.ShortLink.id == link_id,
                    models.ShortLink.deleted_at.is_(None),
                )
                .values(click_count=models.ShortLink.click_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                logger.info("Link %s is gone, dropping click", link_id)
                return
            db.add(models.ClickEvent(short_link_id=link_id))
    except Exception:
        logger.exception("Failed to record click for link %s", link_id)


def list_owned(db: Session, user_id: str) -> list[models.ShortLink]:
    return list(
        db.scalars(
            select(models.ShortLink)
            .where(
                models.ShortLink.owner_id == user_id,
                models.ShortLink.deleted_at.is_(None),
            )
            .order_by(models.ShortLink.created_at.desc())
        )
    )


def _get_owned(db: Session, user_id: str, link_id: str, action: str) -> models.ShortLink:
    link = get_link_by_id(db, link_id)
    if link is None:
        raise NotFound("URL not found")
    # Anonymous links (owner_id is None) never match
    if link.owner_id is None or link.owner_id != user_id:
        raise Forbidden(f"You can only {action} your own URLs")
    return link


def update_owned(db: Session, user_id: str, link_id: str, original_url: str) -> models.ShortLink:
    link = _get_owned(db, user_id, link_id, "update")
    if not validators.is_valid_url(original_url):
        raise InvalidInput("Invalid URL")
    link.original_url = original_url
    db.commit()
    db.refresh(link)
    logger.info("Updated link %s -> %s by=%s", link.code, original_url, user_id)
    return link


def delete_owned(db: Session, user_id: str, link_id: str) -> None:
    link = _get_owned(db, user_id, link_id, "delete")
    link.deleted_at = models.utcnow()
    db.commit()
    logger.info("Deleted link %s by=%s", link.code, user_id)
