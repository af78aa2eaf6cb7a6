"""Configuration system using pydantic-settings with environment variable loading."""

from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from backfill.exceptions import ConfigurationError
from backfill.models import MarketType


class ExchangeSettings(BaseSettings):
    """Binance public REST connection settings."""

    model_config = SettingsConfigDict(env_prefix="BINANCE_")

    futures_base_url: str | None = None  # default: https://fapi.binance.com/fapi/v1
    spot_base_url: str | None = None  # default: https://api.binance.com/api/v3
    enable_rate_limit: bool = True
    timeout_ms: int = 10_000

    def base_url_for(self, market: MarketType) -> str:
        """Return the endpoint base for a market, honouring overrides."""
        override = (
            self.futures_base_url if market is MarketType.FUTURE else self.spot_base_url
        )
        return override or market.default_base_url


class BackfillSettings(BaseSettings):
    """Backfill walk and pipeline cadence.

    All fields configurable via BACKFILL_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    markets: list[MarketType] = [MarketType.FUTURE, MarketType.SPOT]
    interval: str = "1m"
    page_limit: int = 1000  # Binance kline max per request
    request_delay: float = 1.0  # seconds between page requests for one instrument
    pass_interval: float = 5.0  # seconds between catalog passes


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings.

    ``db_path`` has no default: the process refuses to start without it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    db_path: Path
    # store file names inside db_path; None keeps future.db / spot.db
    futures_db_name: str | None = None
    spot_db_name: str | None = None
    log_level: str = "INFO"
    # default_factory so BINANCE_ and BACKFILL_ variables are read at load time
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    backfill: BackfillSettings = Field(default_factory=BackfillSettings)

    def store_path(self, market: MarketType) -> Path:
        """Return the SQLite file used by one market's pipeline."""
        override = self.futures_db_name if market is MarketType.FUTURE else self.spot_db_name
        return self.db_path / (override or market.store_filename)


def load_settings(**overrides) -> AppSettings:  # type: ignore[no-untyped-def]
    """Build AppSettings from the environment, failing clearly on bad config.

    Raises ConfigurationError naming the missing or invalid setting.
    """
    try:
        settings = AppSettings(**overrides)
    except ValidationError as e:
        for error in e.errors():
            if error.get("type") == "missing" and tuple(error.get("loc", ())) == ("db_path",):
                raise ConfigurationError(
                    "DB_PATH is not set: set DB_PATH to the directory where "
                    "the store files should be saved",
                    setting="DB_PATH",
                ) from e
        raise ConfigurationError(f"invalid settings: {e}") from e

    if settings.db_path.exists() and not settings.db_path.is_dir():
        raise ConfigurationError(
            f"DB_PATH {settings.db_path} is not a directory", setting="DB_PATH"
        )
    return settings
