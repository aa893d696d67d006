"""
Application configuration using Pydantic Settings.

Configuration values can be set via environment variables or .env file.
"""

import json
from typing import Annotated, Any, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "eSign"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    DEV_MODE: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"

    # Security
    SECRET_KEY: str = ""
    ESIGN_SECRET_TOKEN: str = ""
    ALLOWED_EMAIL_DOMAINS: Annotated[List[str], NoDecode] = []
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]
    SECURITY_HEADERS_ENABLED: bool = True

    # Database
    DATABASE_URL: str = "sqlite:///./data/esign.db"

    # Document storage
    STORAGE_BACKEND: str = "s3"
    STORAGE_BUCKET: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None
    STORAGE_REGION: str = "auto"
    STORAGE_ACCESS_KEY_ID: Optional[str] = None
    STORAGE_SECRET_ACCESS_KEY: Optional[str] = None
    STORAGE_LOCAL_ROOT: str = "./data/storage"
    SIGNED_FOLDER: str = "signed"
    TEMPLATE_FOLDER: str = ""
    TEMPLATE_FOLDER_ICA: str = ""
    TEMPLATE_FOLDER_NDA: str = ""

    # Signing workflow
    SIGNATURE_TTL_SECONDS: int = 15 * 60
    SIGNATURE_SWEEP_INTERVAL_SECONDS: float = 60.0
    SIGNATURE_MAX_WIDTH: int = 1600
    MIN_SIGNATURE_WIDTH: float = 8.0
    PLACEMENT_POLICY: str = "clamp"
    AUTO_STAGE_TEMPLATE: bool = True
    ENCRYPT_STAGED_DOCUMENTS: bool = True
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    SIGNED_TIMEZONE: str = "Asia/Kolkata"
    STAGED_DOCUMENT_TTL_HOURS: int = 24

    # Webhook notifications
    WEBHOOK_URL: str = ""
    WEBHOOK_TIMEOUT: float = 5.0

    # Rate limiting configuration
    rate_limit_auth_endpoints: str = "30/minute"
    rate_limit_write_endpoints: str = "20/minute"
    rate_limit_read_endpoints: str = "100/minute"

    # Optional Redis URL for distributed rate limiting
    # When set, rate limits will be shared across multiple instances
    redis_url: Optional[str] = None

    @field_validator("CORS_ORIGINS", "ALLOWED_EMAIL_DOMAINS", mode="before")
    @classmethod
    def parse_list_setting(cls, value: Any) -> Any:
        if isinstance(value, str):
            return cls.parse_cors_origins(value)
        return value

    @field_validator("ALLOWED_EMAIL_DOMAINS")
    @classmethod
    def normalize_domains(cls, value: List[str]) -> List[str]:
        return [domain.strip().lower() for domain in value if domain.strip()]

    @field_validator("PLACEMENT_POLICY")
    @classmethod
    def validate_placement_policy(cls, value: str) -> str:
        policy = value.strip().lower()
        if policy not in ("clamp", "reject"):
            raise ValueError("PLACEMENT_POLICY must be 'clamp' or 'reject'")
        return policy

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_storage_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in ("s3", "local"):
            raise ValueError("STORAGE_BACKEND must be 's3' or 'local'")
        return backend

    @staticmethod
    def parse_cors_origins(value: str) -> List[str]:
        """Parse a list setting given either as a JSON array or comma separated."""
        value = value.strip()
        if not value:
            return []
        if value.startswith("["):
            return [str(item).strip() for item in json.loads(value)]
        return [item.strip() for item in value.split(",") if item.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def template_folder_for(self, doc_type: str) -> str:
        """Per-type template folder when configured, else the shared one."""
        per_type = {
            "ICA": self.TEMPLATE_FOLDER_ICA,
            "NDA": self.TEMPLATE_FOLDER_NDA,
        }.get(doc_type.upper(), "")
        return per_type or self.TEMPLATE_FOLDER

    def get_secret_key(self) -> str:
        """Configured SECRET_KEY, or a generated one persisted under data/."""
        if not self.SECRET_KEY:
            from esign.core.security import get_or_create_secret_key

            self.SECRET_KEY = get_or_create_secret_key()
        return self.SECRET_KEY


# Global settings instance
settings = Settings()
