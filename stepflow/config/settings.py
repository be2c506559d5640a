"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage backend: "mongo" for MongoDB, "memory" for in-process stores
    storage_backend: str = "mongo"

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "stepflow_dev"

    # JWT (HS256 shared secret, subject = username)
    jwt_secret: str = "change-me-in-production-change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_expiration_minutes: int = 60

    # Access control
    admin_role_name: str = "ADMIN"

    # Form data log limits
    max_form_data_length: int = 50_000  # Total characters across all entries
    max_form_data_entries: int = 500

    # Business rules
    rule_expression_max_length: int = 1000

    # Read-mostly lookup cache (templates, identities)
    lookup_cache_ttl_seconds: int = 300
    lookup_cache_max_entries: int = 10_000

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"
    log_to_file: bool = False

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def uses_memory_storage(self) -> bool:
        """Check if in-process stores are configured"""
        return self.storage_backend.lower() == "memory"

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
