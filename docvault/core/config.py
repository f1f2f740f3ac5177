"""
Configuration Management
Loads settings from environment variables with type validation
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Application
    APP_NAME: str = "DocVault Access Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "docvault"
    POSTGRES_PASSWORD: str = "docvault_password"
    POSTGRES_DB: str = "docvault"
    POSTGRES_POOL_SIZE: int = 10
    POSTGRES_MAX_OVERFLOW: int = 20

    # Full SQLAlchemy URL, takes precedence over the POSTGRES_* fields
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # MinIO
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_USE_SSL: bool = False
    STORAGE_BUCKET: str = "encrypted-documents"

    # Key management
    KMS_KEY_ID: str = "local/docvault-master"
    KMS_MASTER_KEY: Optional[str] = Field(
        default=None,
        description="Base64-encoded 32-byte wrapping key for the local key service",
    )
    KMS_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # Encryption
    ENCRYPTION_ALGORITHM: str = "AES-256-GCM"
    CHECKSUM_ALGORITHM: str = "SHA-256"
    DATA_KEY_IV_BYTES: int = 16

    # Share links
    SHARE_LINK_DEFAULT_TTL_DAYS: int = 7
    SHARE_LINK_TOKEN_BYTES: int = 32
    BCRYPT_ROUNDS: int = 10

    # Permission resolution
    MAX_FOLDER_DEPTH: int = Field(default=64, ge=1)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid = ["development", "test", "staging", "production"]
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


# Global settings instance
settings = Settings()
