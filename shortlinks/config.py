import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Explicitly load .env from project root (parent of shortlinks/)
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH)

DEV_DB_PATH = Path(__file__).parent.parent / "shortlinks_dev.db"


@dataclass(frozen=True)
class Settings:
    environment: str = "dev"
    database_url: str = f"sqlite:///{DEV_DB_PATH}"
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    code_length: int = 6
    public_base_url: str | None = None
    bcrypt_rounds: int = 12
    log_level: str = "INFO"


def load_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "dev")

    # Dev: SQLite (zero config), Prod: PostgreSQL
    database_url = os.getenv("DATABASE_URL")
    if environment == "prod" and not database_url:
        raise RuntimeError("DATABASE_URL must be set in production")

    return Settings(
        environment=environment,
        database_url=database_url or f"sqlite:///{DEV_DB_PATH}",
        jwt_secret=os.getenv("JWT_SECRET") or None,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        code_length=int(os.getenv("CODE_LENGTH", "6")),
        public_base_url=(os.getenv("PUBLIC_BASE_URL") or "").rstrip("/") or None,
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
