from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MOLLIE_KEY_PREFIXES = ("test_", "live_")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="paybridge")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    mollie_api_key: Optional[str] = Field(default=None, description="Mollie API key (test_... or live_...)")
    mollie_api_url: str = Field(default="https://api.mollie.com/v2", description="Mollie REST API base URL")
    mollie_test_mode: Optional[bool] = Field(
        default=None,
        description="Force test mode. When unset, test mode follows the API key prefix",
    )
    mollie_default_currency: str = Field(default="EUR", min_length=3, max_length=3)
    mollie_webhook_url: Optional[str] = Field(default=None, description="Default webhook URL for new payments")
    mollie_timeout_seconds: int = Field(default=30, description="Total request timeout in seconds")
    mollie_connect_timeout_seconds: int = Field(default=10, description="Connect timeout in seconds")

    @model_validator(mode="after")
    def validate_mollie_configuration(self) -> "Settings":
        """
        Validate the Mollie credentials and transport settings.

        A configured API key must carry one of the prefixes Mollie issues,
        and both timeouts must be positive.
        """
        if self.mollie_api_key and not self.mollie_api_key.startswith(MOLLIE_KEY_PREFIXES):
            raise ValueError(
                f"mollie_api_key must start with one of {MOLLIE_KEY_PREFIXES}"
            )

        if self.mollie_timeout_seconds <= 0 or self.mollie_connect_timeout_seconds <= 0:
            raise ValueError("Mollie timeouts must be positive")

        self.mollie_default_currency = self.mollie_default_currency.upper()
        return self


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    The same instance is returned for the lifetime of the process so every
    adapter sees one consistent configuration.

    Returns:
        Settings: The cached settings instance
    """
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the cached settings instance.

    Useful for testing or when configuration needs to be reloaded.
    """
    get_settings.cache_clear()
