"""Tests for application configuration."""

from boutiqueflow.config import Settings


def test_settings_defaults() -> None:
    """Test that settings have expected default values."""
    settings = Settings()
    assert settings.api_port == 8000
    assert settings.debug is False
    assert "postgresql" in settings.database_url
    assert settings.heartland_page_size == 100
    assert settings.receiving_lookback_days == 365


def test_pricing_fallback_ratios() -> None:
    """Test the default price markup and cost ratio."""
    settings = Settings()
    assert settings.price_markup_ratio == 2.5
    assert settings.cost_ratio == 0.4


def test_heartland_api_url_from_subdomain() -> None:
    """Test that the API URL is derived from the subdomain."""
    settings = Settings(heartland_subdomain="monkees", heartland_base_url="")
    assert settings.heartland_api_url == "https://monkees.retail.heartland.us/api"


def test_heartland_api_url_explicit() -> None:
    """Test that an explicit base URL wins over the subdomain."""
    settings = Settings(
        heartland_subdomain="monkees",
        heartland_base_url="https://proxy.example.com/api/",
    )
    assert settings.heartland_api_url == "https://proxy.example.com/api"
