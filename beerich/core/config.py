from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "BeeRich"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # DynamoDB
    DYNAMO_REGION: str = Field(default="eu-west-1")
    DYNAMO_ENDPOINT_URL: Optional[str] = Field(default=None)
    DYNAMO_USERS_TABLE: str = Field(default="beerich-users", validation_alias="DYNAMO_TABLE_USERS")
    DYNAMO_EXPENSES_TABLE: str = Field(default="beerich-expenses", validation_alias="DYNAMO_TABLE_EXPENSES")
    DYNAMO_CREATE_TABLES: bool = Field(default=False)

    # Attachments
    ATTACHMENTS_DIR: str = Field(default="./attachments")
    ATTACHMENT_MAX_BYTES: int = 3_000_000

    # JWT session
    JWT_SECRET_KEY: str = Field(default="change-me-in-production", validation_alias="JWT_SECRET")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30  # 30 days
    SESSION_COOKIE_NAME: str = "__session"
    SESSION_COOKIE_SECURE: bool = Field(default=False)

    DEFAULT_CURRENCY_CODE: str = "USD"


settings = Settings()
