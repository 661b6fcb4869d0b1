"""
Configuration management for the Storefront checkout API.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() refuses to boot production with a
      simulated payment gateway, missing Braintree credentials or JWT secret,
      or wildcard CORS.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/storefront.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "storefront-api"
    jwt_access_ttl_minutes: int = 7 * 24 * 60  # 7 days

    # ── Payment Gateway (Braintree) ─────────────────────────────────
    # When True, SimulatedGateway answers sandbox-style fake nonces and
    # no Braintree credentials are needed.
    payment_simulation_mode: bool = True
    braintree_environment: str = "sandbox"  # sandbox | production
    braintree_merchant_id: str = ""
    braintree_public_key: str = ""
    braintree_private_key: str = ""
    gateway_timeout_seconds: float = 30.0
    gateway_worker_threads: int = 8

    # ── Stock reservations & reconciliation ─────────────────────────
    reservation_ttl_minutes: int = 15
    reconcile_interval_seconds: int = 60
    reconcile_max_attempts: int = 5

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def braintree_configured(self) -> bool:
        return bool(
            self.braintree_merchant_id
            and self.braintree_public_key
            and self.braintree_private_key
        )

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.payment_simulation_mode:
                raise ValueError(
                    "PAYMENT_SIMULATION_MODE must be false in production. "
                    "The simulated gateway accepts fake nonces."
                )
            if not self.braintree_configured:
                raise ValueError(
                    "BRAINTREE_MERCHANT_ID, BRAINTREE_PUBLIC_KEY and "
                    "BRAINTREE_PRIVATE_KEY must be set in production."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign access tokens."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.payment_simulation_mode:
                warnings.append("PAYMENT_SIMULATION_MODE=true (fake nonces are charged)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (token issuing will fail)")
            for w in warnings:
                logger.warning(w)


# Global settings instance
settings = Settings()
