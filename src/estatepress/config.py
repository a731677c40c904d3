"""Configuration loading from environment variables with validation."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Anchor all paths to the project root (two levels up from this file)
_PROJECT_DIR = Path(__file__).resolve().parent.parent.parent


class RegionProfile(BaseModel):
    """Regional vocabulary used by scoring, local-relevance analysis and CTAs."""

    name: str = "Boston"
    state: str = "Massachusetts"
    state_abbrev: str = "MA"
    site_name: str = "BMN Boston"
    site_domain: str = "bmnboston.com"
    business_names: list[str] = ["bmnboston", "steve novak"]
    sub_regions: list[str] = [
        "Boston", "Cambridge", "Somerville", "Brookline", "Newton", "Quincy",
        "Medford", "Malden", "Everett", "Chelsea", "Revere", "Waltham",
        "Watertown", "Arlington", "Belmont", "Winchester", "Lexington",
        "Concord", "Wellesley", "Needham", "Milton", "Dedham", "Norwood",
        "Braintree", "Weymouth",
    ]
    neighborhoods: list[str] = [
        "Back Bay", "Beacon Hill", "South End", "North End", "Seaport",
        "Charlestown", "Jamaica Plain", "Dorchester", "Roxbury", "Allston",
        "Brighton", "West Roxbury", "Hyde Park", "Mattapan", "Roslindale",
        "South Boston", "East Boston", "Fenway", "Mission Hill", "Downtown",
    ]
    landmarks: list[str] = [
        "fenway", "td garden", "freedom trail", "charles river",
        "boston common", "public garden", "harvard", "mit",
        "quincy market", "faneuil hall",
    ]

    @property
    def region_terms(self) -> list[str]:
        """Region name, state name and state abbreviation, lowercased."""
        return [self.name.lower(), self.state.lower(), self.state_abbrev.lower()]

    @property
    def local_areas(self) -> list[str]:
        """Neighborhoods plus every sub-region other than the region itself."""
        others = [c for c in self.sub_regions if c.lower() != self.name.lower()]
        return self.neighborhoods + others


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ESTATEPRESS_",
        case_sensitive=False,
    )

    # Provider credentials (loaded separately, no prefix)
    anthropic_api_key: str = ""
    unsplash_access_key: str = ""
    pexels_api_key: str = ""
    wordpress_url: str = ""
    wordpress_user: str = ""
    wordpress_app_password: str = ""

    # Model settings
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.7
    generation_timeout: float = 120.0

    # Image providers (seconds, kept well under the text-generation timeout)
    image_timeout: float = 15.0

    # Site
    site_url: str = "https://bmnboston.com"
    region: RegionProfile = RegionProfile()
    # Whether published articles carry LocalBusiness structured data
    local_business_schema: bool = True

    # Storage paths (absolute, anchored to the project root)
    db_path: Path = _PROJECT_DIR / "data" / "estatepress.db"
    photo_catalog_path: Path = _PROJECT_DIR / "data" / "photo_catalog.json"
    market_stats_path: Path = _PROJECT_DIR / "data" / "market_stats.json"

    # Topic sources
    web_search_enabled: bool = True
    web_search_weight: float = 0.4
    rss_feeds_enabled: bool = True
    rss_feeds_weight: float = 0.3
    market_data_enabled: bool = False
    market_data_weight: float = 0.3
    research_feeds: list[str] = [
        "https://www.inman.com/feed/",
        "https://www.housingwire.com/feed/",
        "https://www.realtor.com/news/feed/",
        "https://www.nar.realtor/rss/newsroom",
    ]

    # Topic lifecycle (days)
    topic_expiry_days: int = 30
    archive_retention_days: int = 90
    recent_topic_window_days: int = 60
    default_min_score: float = 50.0

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load settings from environment and .env file."""
    # Load .env from the project root regardless of cwd
    load_dotenv(_PROJECT_DIR / ".env")
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        unsplash_access_key=os.getenv("UNSPLASH_ACCESS_KEY", ""),
        pexels_api_key=os.getenv("PEXELS_API_KEY", ""),
        wordpress_url=os.getenv("WORDPRESS_URL", ""),
        wordpress_user=os.getenv("WORDPRESS_USER", ""),
        wordpress_app_password=os.getenv("WORDPRESS_APP_PASSWORD", ""),
    )
