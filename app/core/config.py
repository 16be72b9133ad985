from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Gate credential signing key; kept separate from the session token key
    credential_secret_key: str = Field(..., alias="CREDENTIAL_SECRET_KEY")

    # Leave rules
    max_regular_leave_days: int = Field(15, alias="MAX_REGULAR_LEAVE_DAYS")
    min_advance_days: int = Field(2, alias="MIN_ADVANCE_DAYS")
    qr_code_validity_hours: int = Field(2, alias="QR_CODE_VALIDITY_HOURS")
    qr_code_size: int = Field(10, alias="QR_CODE_SIZE")

    campus_timezone: str = Field("Asia/Kolkata", alias="CAMPUS_TIMEZONE")
    store_timeout_seconds: float = Field(10.0, alias="STORE_TIMEOUT_SECONDS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
