"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class AtmConfig(BaseSettings):
    """ATM ledger configuration"""

    # Persistence configuration
    database_url: str = "sqlite:///atm_ledger.db"  # memory://, sqlite:///path, postgresql://...
    persistence_enabled: bool = True
    database_connect_timeout: int = 5  # seconds, PostgreSQL only

    # Account defaults
    default_opening_balance: int = 10000
    low_balance_threshold: int = 500
    mini_statement_size: int = 5
    export_directory: str = "."

    # Seeded demo account; empty username disables seeding
    demo_username: Optional[str] = "Priyanshu"
    demo_pin: str = "1234"

    # Cheque clearing
    cheque_clearing_delay_seconds: float = 5.0

    # Interest calculator
    interest_rate: str = "4.0"  # Percent per annum, parsed as Decimal

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    class Config:
        env_prefix = "ATM_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = AtmConfig()


def get_config() -> AtmConfig:
    """Get global configuration instance"""
    return config

