"""
Settings for the valuation service.

Values come from environment variables or a `.env` file in the working
directory. Defaults are suitable for local development; the payment check
is always enforced unless DISABLE_PAYMENT_CHECK is explicitly set.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(default="sqlite:///./valuation_reports.db")

    # Development/staging escape hatch. Never enable in production.
    disable_payment_check: bool = Field(default=False)
    disable_rate_limit: bool = Field(default=False)

    # Identical anonymous submissions inside this window return the existing report
    idempotency_window_seconds: int = Field(default=300)

    vpic_base_url: str = Field(default="https://vpic.nhtsa.dot.gov/api/vehicles")
    valuation_api_url: str = Field(
        default="https://mc-api.marketcheck.com/v2/predict/car/us/marketcheck_price/comparables"
    )
    valuation_api_key: str | None = Field(default=None)
    # USD per successful valuation call, recorded in api_call_logs
    valuation_call_cost: float = Field(default=0.09)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
