"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./jela.db"
    database_echo: bool = False  # Set to True for SQL logging in development

    # Environment
    environment: str = "development"
    debug: bool = True
    auto_create_schema: bool = True  # create_all() at startup, disable when using migrations

    # Pagination defaults
    default_page_size: int = 50
    max_page_size: int = 200
    default_visible_pages: int = 5  # Prefer uneven numbers

    # SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_sender: str = "noreply@example.com"
    smtp_use_ssl: bool = True  # STARTTLS after connect
    smtp_timeout: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings that must be changed before running in production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if self.database_url.startswith("sqlite"):
                errors.append("DATABASE_URL must point to a server database in production")

            if self.smtp_user and not self.smtp_password:
                errors.append("SMTP_PASSWORD must be set when SMTP_USER is configured")

            if not self.smtp_use_ssl:
                errors.append("SMTP_USE_SSL must be enabled in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()
