"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "postgresql://localhost:5432/boutiqueflow"

    # Redis (for Celery)
    redis_url: str = "redis://localhost:6379/0"

    # Heartland Retail API
    heartland_subdomain: str = ""
    heartland_api_token: str = ""
    heartland_base_url: str = ""
    heartland_page_size: int = 100
    heartland_max_pages: int = 200
    heartland_timeout: int = 30  # seconds

    # Ollama (local LLM for product descriptions)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llava"
    ollama_timeout: int = 120  # seconds

    # Storefront copy
    store_name: str = "Monkee's of Chattanooga"
    store_contact_footer: str = (
        "**Not sure of the fit? Need more information?**\n"
        "**We're here to help! Send us a DM @monkeesofchattanooga or call 423-486-1300!**"
    )

    # Sync
    sync_api_key: str = ""
    receiving_lookback_days: int = 365
    sales_lookback_days: int = 365
    store_timezone: str = "America/New_York"

    # Pricing fallbacks when receiving and sales data disagree
    price_markup_ratio: float = 2.5
    cost_ratio: float = 0.4

    # Application
    debug: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def heartland_api_url(self) -> str:
        """Base URL for the Heartland API, derived from the subdomain if unset."""
        if self.heartland_base_url:
            return self.heartland_base_url.rstrip("/")
        return f"https://{self.heartland_subdomain}.retail.heartland.us/api"


settings = Settings()
