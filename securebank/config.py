"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .logging_config import get_logger


logger = get_logger("securebank.config")

# Well-known fallbacks, only honoured when insecure_mode is enabled
INSECURE_JWT_SECRET = "insecure-development-jwt-secret"
INSECURE_ENCRYPTION_KEY = "insecure-development-encryption-key"


@dataclass(frozen=True)
class Secrets:
    """Resolved signing and encryption secrets"""
    jwt_secret: str
    encryption_key: str


class BankConfig(BaseSettings):
    """SecureBank configuration"""

    model_config = SettingsConfigDict(
        env_prefix="SECUREBANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///securebank.db"  # sqlite:///<path> or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    jwt_secret: str = ""  # SECUREBANK_JWT_SECRET
    jwt_algorithm: str = "HS256"
    encryption_key: str = ""  # SECUREBANK_ENCRYPTION_KEY
    insecure_mode: bool = False  # Test environments only
    session_ttl_days: int = 7
    session_expiry_margin_seconds: int = 60
    session_cookie_name: str = "session"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    min_funding_amount: str = "0.01"
    max_funding_amount: str = "10000"

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60

    def resolve_secrets(self) -> Secrets:
        """
        Resolve the signing and encryption secrets.

        Missing secrets are a startup failure unless insecure_mode is set, in
        which case the well-known development fallbacks are used and a
        CRITICAL record is logged for each one.
        """
        jwt_secret = self.jwt_secret
        encryption_key = self.encryption_key

        missing = []
        if not jwt_secret:
            missing.append("SECUREBANK_JWT_SECRET")
        if not encryption_key:
            missing.append("SECUREBANK_ENCRYPTION_KEY")

        if missing and not self.insecure_mode:
            raise ConfigurationError(
                f"Missing required secrets: {', '.join(missing)}. "
                "Set them in the environment or enable SECUREBANK_INSECURE_MODE for tests."
            )

        if not jwt_secret:
            logger.critical(
                "SECUREBANK_JWT_SECRET is not set. Using the insecure development "
                "fallback; session tokens can be forged."
            )
            jwt_secret = INSECURE_JWT_SECRET
        if not encryption_key:
            logger.critical(
                "SECUREBANK_ENCRYPTION_KEY is not set. Using the insecure development "
                "fallback; stored SSNs are not protected."
            )
            encryption_key = INSECURE_ENCRYPTION_KEY

        return Secrets(jwt_secret=jwt_secret, encryption_key=encryption_key)

    def sqlite_path(self) -> Optional[str]:
        """Return the SQLite file path, or None for in-memory storage"""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url[len("sqlite:///"):]
        if self.database_url.startswith("memory://"):
            return None
        raise ConfigurationError(f"Unsupported database_url: {self.database_url}")


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
