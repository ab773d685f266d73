"""
Environment-provided configuration for the DevCamper API.

A single Settings object is built at startup and handed to every component
that needs it. Values come from the process environment or a local .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

API_PREFIX = "/api/v1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # General
    environment: str = Field("development", alias="ENVIRONMENT")
    port: int = Field(5000, alias="PORT")

    # MongoDB
    database_url: str = Field("mongodb://localhost:27017", alias="DATABASE_URL")
    database_name: str = Field("devcamper", alias="DATABASE_NAME")

    # JWT
    jwt_secret: str = Field("devcamper-secret", alias="JWT_SECRET")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    jwt_expire_days: int = Field(30, alias="JWT_EXPIRE_DAYS")
    jwt_cookie_expire_days: int = Field(30, alias="JWT_COOKIE_EXPIRE_DAYS")

    # Passwords
    bcrypt_rounds: int = Field(10, alias="BCRYPT_ROUNDS")
    reset_token_expire_minutes: int = Field(10, alias="RESET_TOKEN_EXPIRE_MINUTES")

    # Uploads
    max_file_upload: int = Field(1_000_000, alias="MAX_FILE_UPLOAD")
    file_upload_path: str = Field("./public/uploads", alias="FILE_UPLOAD_PATH")

    # Mail
    smtp_host: Optional[str] = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(2525, alias="SMTP_PORT")
    smtp_email: Optional[str] = Field(None, alias="SMTP_EMAIL")
    smtp_password: Optional[str] = Field(None, alias="SMTP_PASSWORD")
    from_email: str = Field("noreply@devcamper.io", alias="FROM_EMAIL")
    from_name: str = Field("DevCamper", alias="FROM_NAME")

    # Geocoder
    geocoder_api_key: Optional[str] = Field(None, alias="GEOCODER_API_KEY")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
