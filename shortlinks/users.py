import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shortlinks import auth, models
from shortlinks.config import Settings
from shortlinks.errors import Conflict, Unauthorized

logger = logging.getLogger("shortlinks.users")


def get_user_by_email(db: Session, email: str) -> models.User | None:
    return db.scalars(
        select(models.User).where(
            models.User.email == email,
            models.User.deleted_at.is_(None),
            models.User.is_active.is_(True),
        )
    ).first()


def get_active_user(db: Session, user_id: str) -> models.User | None:
    return db.scalars(
        select(models.User).where(
            models.User.id == user_id,
            models.User.deleted_at.is_(None),
            models.User.is_active.is_(True),
        )
    ).first()


def create_user(db: Session, email: str, password: str, rounds: int = 12) -> models.User:
    if get_user_by_email(db, email) is not None:
        raise Conflict("User with this email already exists")

    user = models.User(email=email, password_hash=auth.hash_password(password, rounds=rounds))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race, or the email belongs to a live but inactive account
        db.rollback()
        raise Conflict("User with this email already exists")
    db.refresh(user)
    logger.info("User registered: %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> models.User:
    """Return the user for valid credentials.

    Unknown email and wrong password fail identically so callers cannot
    probe which accounts exist.
    """
    user = get_user_by_email(db, email)
    if user is None or not auth.verify_password(password, user.password_hash):
        logger.warning("Failed login attempt for %s", email)
        raise Unauthorized("Invalid email or password")
    return user


def validate_token(db: Session, token: str | None, settings: Settings) -> models.User:
    if not token:
        raise Unauthorized("Authentication token required")
    payload = auth.decode_access_token(token, settings)
    user = get_active_user(db, payload["sub"])
    if user is None:
        logger.info("Token subject %s no longer exists", payload["sub"])
        raise Unauthorized("Invalid or expired token")
    return user


def issue_token(user: models.User, settings: Settings) -> str:
    return auth.create_access_token(user.id, user.email, settings)
