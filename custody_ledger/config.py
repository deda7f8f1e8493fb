"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Custody ledger configuration"""

    # Ledger limits (smallest value unit, immutable once the ledger is built)
    capacity_limit: int = 1_000_000
    withdraw_limit: int = 10_000
    owner: Optional[str] = None  # Principal holding the privileged history read

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Payout configuration
    payout_url: str = ""  # Empty = in-process recording payout
    payout_timeout: float = 5.0
    payout_api_key: str = ""

    @model_validator(mode="after")
    def check_limits(self):
        """Reject limits the ledger would refuse"""
        if self.capacity_limit <= 0:
            raise ValueError("capacity_limit must be positive")
        if not 0 < self.withdraw_limit < self.capacity_limit:
            raise ValueError("withdraw_limit must be positive and less than capacity_limit")
        return self

    class Config:
        env_prefix = "CUSTODY_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
