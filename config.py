"""
config.py
Centralized configuration for the trade-history sync service.

Loads settings from a .env file and the process environment.
Separates configuration from application logic (SOLID's SRP).
"""

import os
import logging
from dataclasses import dataclass, field
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Load .env file ---
# Create a file named .env in the working directory, e.g.:
# ATLAS_DB_PATH=atlas.db
# FETCH_TIMEOUT_SECONDS=30
# NOTIFY_TRADE_CLOSED=true
load_dotenv()

SUPPORTED_CURRENCIES = ("USD", "EUR")


@dataclass(frozen=True)
class Config:
    """
    Holds all configuration for the application, loaded from environment variables.
    The environment is read when the instance is created.
    """
    # Storage
    db_path: str = field(default_factory=lambda: os.getenv("ATLAS_DB_PATH", "atlas.db"))

    # Remote exports
    fetch_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("FETCH_TIMEOUT_SECONDS", 30)))
    fetch_max_retries: int = field(default_factory=lambda: int(os.getenv("FETCH_MAX_RETRIES", 3)))

    # Notifications
    notify_trade_closed: bool = field(
        default_factory=lambda: os.getenv("NOTIFY_TRADE_CLOSED", "true").lower() == "true")

    # Accounts
    default_currency: str = field(default_factory=lambda: os.getenv("DEFAULT_CURRENCY", "USD").upper())

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())


def load_config() -> Config:
    """Loads and validates the application configuration."""
    try:
        cfg = Config()
    except ValueError as e:
        raise ValueError(f"FETCH_TIMEOUT_SECONDS and FETCH_MAX_RETRIES must be numbers: {e}") from e

    if cfg.fetch_timeout_seconds <= 0:
        raise ValueError("FETCH_TIMEOUT_SECONDS must be greater than 0.")
    if cfg.fetch_max_retries < 1:
        raise ValueError("FETCH_MAX_RETRIES must be at least 1.")
    if cfg.default_currency not in SUPPORTED_CURRENCIES:
        raise ValueError(f"DEFAULT_CURRENCY must be one of {SUPPORTED_CURRENCIES}, got '{cfg.default_currency}'.")
    if not isinstance(logging.getLevelName(cfg.log_level), int):
        raise ValueError(f"Unknown LOG_LEVEL '{cfg.log_level}'.")

    logger.info(f"Configuration loaded. DB: {cfg.db_path}, Notify closed trades: {cfg.notify_trade_closed}")
    return cfg
