"""
Configuration Management Module

Environment-driven settings for the financing back office, loaded with
pydantic-settings. Every field can be overridden with an ``AGRO_`` variable.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class AgroFinancingConfig(BaseSettings):
    """Agro financing system configuration"""

    model_config = SettingsConfigDict(
        env_prefix="AGRO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence
    database_url: str = "sqlite:///agro_financing.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    role_header: str = "X-User-Role"
    user_header: str = "X-User-Id"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    # Business rules
    currency_code: str = "VES"
    max_term_months: int = 360

    # Feature flags
    enable_notifications: bool = True


config = AgroFinancingConfig()


def get_config() -> AgroFinancingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AgroFinancingConfig:
    """Reload configuration from environment"""
    global config
    config = AgroFinancingConfig()
    return config
