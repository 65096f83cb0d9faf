"""
Configuration Management
Loads settings from environment variables with type validation
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Access Control Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Security
    SECRET_KEY: str = Field(
        default="development-secret-key-change-in-production",
        min_length=32,
    )
    JWT_ALGORITHM: str = "HS256"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "accessuser"
    POSTGRES_PASSWORD: str = "access_password"
    POSTGRES_DB: str = "access_control"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def POSTGRES_URL(self) -> str:
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Audit
    AUDIT_ENABLED: bool = True
    AUDIT_LOG_GRANTS: bool = False

    # Access checks
    ACCESS_KEY_DEFAULT_PERMISSION: str = "download"
    ACCESS_CHECK_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_MAX_FAILED_ATTEMPTS: int = Field(default=10, ge=1)
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=900, ge=1)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid = ["development", "testing", "staging", "production"]
        if v not in valid:
            raise ValueError(f"ENVIRONMENT must be one of {valid}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}")
        return v_upper

    @field_validator("ACCESS_KEY_DEFAULT_PERMISSION")
    @classmethod
    def validate_access_key_permission(cls, v: str) -> str:
        valid = ["read", "download", "edit", "delete", "admin"]
        v_lower = v.lower()
        if v_lower not in valid:
            raise ValueError(f"ACCESS_KEY_DEFAULT_PERMISSION must be one of {valid}")
        return v_lower

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "allow"


# Global settings instance
settings = Settings()
