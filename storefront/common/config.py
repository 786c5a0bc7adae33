"""Central environment-driven settings for the storefront checkout core.

Loaded once per process. Checkout hooks read `settings` at call time, so a
process can flip behavior (for example the gateway-error policy) without
rebuilding its state machine.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class StorefrontSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "storefront"
    log_level: str = "INFO"
    database_url: str = "sqlite+pysqlite:///:memory:"
    allow_checkout_on_gateway_error: bool = False
    always_include_confirm_step: bool = False
    tax_rate: float = 0.0
    model_config = SettingsConfigDict(env_file=".env", env_prefix="STOREFRONT_", extra="ignore")


settings = StorefrontSettings()
