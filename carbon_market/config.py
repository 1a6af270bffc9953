"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps secrets (JWT signing key, Stripe keys) out of source
code — the .env file is gitignored.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from carbon_market.config import settings
    print(settings.STRIPE_WEBHOOK_SECRET)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Carbon Market API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
      - STRIPE_SECRET_KEY: API key for creating/cancelling payment intents
      - STRIPE_WEBHOOK_SECRET: Shared secret for verifying webhook signatures
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Carbon Market API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for local development; use a postgresql+asyncpg URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/carbon.db"

    # --- Authentication ---
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Payments (Stripe) ---
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    # Maximum age of a signed webhook before it is rejected as a replay
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # --- Checkout ---
    # How long credits stay RESERVED for an unpaid checkout
    CHECKOUT_HOLD_MINUTES: int = 30
    DEFAULT_CURRENCY: str = "USD"

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
