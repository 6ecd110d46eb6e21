from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    # Tokens are issued by the hosted identity provider; we only verify them.
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    jwt_audience: Optional[str] = Field(None, alias="JWT_AUDIENCE")

    paystack_secret_key: Optional[str] = Field(None, alias="PAYSTACK_SECRET_KEY")
    paystack_base_url: str = Field("https://api.paystack.co", alias="PAYSTACK_BASE_URL")

    hubtel_client_id: Optional[str] = Field(None, alias="HUBTEL_CLIENT_ID")
    hubtel_client_secret: Optional[str] = Field(None, alias="HUBTEL_CLIENT_SECRET")
    hubtel_sms_from: str = Field("School", alias="HUBTEL_SMS_FROM")
    hubtel_base_url: str = Field("https://smsc.hubtel.com/v1/messages/send", alias="HUBTEL_BASE_URL")
    sms_enabled: bool = Field(True, alias="SMS_ENABLED")

    cron_secret_token: Optional[str] = Field(None, alias="CRON_SECRET_TOKEN")

    currency: str = Field("GHS", alias="CURRENCY")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    http_timeout_seconds: float = Field(15.0, alias="HTTP_TIMEOUT_SECONDS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
