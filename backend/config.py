"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the system keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Remote store
    DATABASE_URL: str = "sqlite:///./fold.db"

    # Durable client storage (JSON file)
    CLIENT_STORAGE_PATH: str = "./fold-storage.json"

    # Price sources
    COINGECKO_API_KEY: str = ""
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    YAHOO_CHART_URL: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    EXCHANGE_RATE_URL: str = "https://api.exchangerate-api.com/v4/latest/USD"
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Caching and scheduling
    PRICE_CACHE_TTL_HOURS: float = 6.0
    RATE_CACHE_TTL_HOURS: float = 6.0
    DEFAULT_EXCHANGE_RATE: float = 0.92
    HISTORY_SYNC_DELAY_SECONDS: float = 2.0
    INITIAL_REFRESH_DELAY_SECONDS: float = 1.0
    PRICE_FETCH_WORKERS: int = 8

    # Serve the deterministic demo dataset and never touch the remote store
    DEMO_MODE: bool = False

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @field_validator("DEFAULT_EXCHANGE_RATE")
    @classmethod
    def validate_default_rate(cls, v: float) -> float:
        """A conversion rate must be strictly positive."""
        if v <= 0:
            raise ValueError(f"DEFAULT_EXCHANGE_RATE must be positive, got {v!r}")
        return v

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
