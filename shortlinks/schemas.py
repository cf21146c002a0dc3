from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shortlinks import validators


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------- URL shortener ----------

class ShortenRequest(CamelModel):
    original_url: str = Field(min_length=1)


class UpdateUrlRequest(CamelModel):
    original_url: str = Field(min_length=1)


class ShortUrlOut(CamelModel):
    short_code: str
    short_url: str
    original_url: str


class UrlInfoOut(ShortUrlOut):
    click_count: int
    created_at: datetime
    updated_at: datetime


class UserUrlOut(UrlInfoOut):
    id: str


class MessageOut(CamelModel):
    message: str


class HealthOut(CamelModel):
    status: str
    service: str
    version: str
    timestamp: datetime


# ---------- Identity ----------

class LoginRequest(CamelModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return validators.normalize_email(value)


class RegisterRequest(LoginRequest):
    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validators.check_password_strength(value)


class UserOut(CamelModel):
    id: str
    email: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class AuthOut(CamelModel):
    access_token: str
    token_type: str
    expires_in: str
    user: UserOut
