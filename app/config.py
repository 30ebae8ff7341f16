"""
Application configuration with automatic environment detection
"""
import os
from typing import Dict, List, Optional
from dotenv import load_dotenv

load_dotenv()


def _parse_location_map(raw: str) -> Dict[int, str]:
    """Parse "7:Narita - JP,9:Ba Đình - HN" into {7: "Narita - JP", 9: "Ba Đình - HN"}."""
    mapping: Dict[int, str] = {}
    for part in (raw or "").split(","):
        part = part.strip()
        if not part or ":" not in part:
            continue
        wid, name = part.split(":", 1)
        wid, name = wid.strip(), name.strip()
        if not wid.isdigit() or not name:
            continue
        mapping[int(wid)] = name
    return mapping


class Settings:
    """Application settings with automatic environment detection"""

    # Environment detection
    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV == "PROD" or ENV == "PRODUCTION"
    IS_DEVELOPMENT = not IS_PRODUCTION

    # Server configuration
    HOST = os.getenv("HOST", "127.0.0.1")
    PORT = int(os.getenv("PORT", 8000))

    # Database (stores offline Shopify sessions and inventory sync run logs)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./inventory_sync.db")

    # Shopify app. The secret also signs embedded-app session tokens.
    SHOPIFY_API_KEY = os.getenv("SHOPIFY_API_KEY", "")
    SHOPIFY_API_SECRET = os.getenv("SHOPIFY_API_SECRET", "")
    SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-10")
    # Pause between successive inventory mutations to stay under the Admin API rate limit
    SHOPIFY_MUTATION_DELAY_SEC = float(os.getenv("SHOPIFY_MUTATION_DELAY_SEC", "0.5"))

    # Warehouse API
    WAREHOUSE_API_URL = os.getenv("WAREHOUSE_API_URL", "").strip().rstrip("/")
    WAREHOUSE_API_TOKEN = os.getenv("WAREHOUSE_API_TOKEN", "")
    WAREHOUSE_PAGE_LIMIT = int(os.getenv("WAREHOUSE_PAGE_LIMIT", "100"))
    WAREHOUSE_LOCATIONS = _parse_location_map(
        os.getenv("WAREHOUSE_LOCATIONS", "7:Narita - JP,9:Ba Đình - HN")
    )
    # Fixture data instead of the real warehouse (local development only)
    USE_MOCK_WAREHOUSE = os.getenv("USE_MOCK_WAREHOUSE", "").lower() in ("1", "true", "yes")

    # Scheduled inventory sync
    ENABLE_INVENTORY_SYNC = os.getenv("ENABLE_INVENTORY_SYNC", "true").lower() not in ("0", "false", "no")
    INVENTORY_SYNC_INTERVAL_SEC = int(os.getenv("INVENTORY_SYNC_INTERVAL_SEC", "3600"))  # hourly
    INVENTORY_SYNC_FIRST_DELAY_SEC = int(os.getenv("INVENTORY_SYNC_FIRST_DELAY_SEC", "120"))

    # Outbound HTTP
    HTTP_TIMEOUT_SEC = float(os.getenv("HTTP_TIMEOUT_SEC", "30"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG").upper()

    # API Configuration
    API_PREFIX = "/api"

    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Allowed CORS origins from ALLOWED_ORIGINS (comma-separated), plus Shopify admin."""
        origins = ["https://admin.shopify.com"]
        if self.IS_DEVELOPMENT:
            origins.extend(["http://localhost:3000", "http://127.0.0.1:3000"])
        for origin in os.getenv("ALLOWED_ORIGINS", "").split(","):
            origin = origin.strip()
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def CORS_ORIGIN_REGEX(self) -> Optional[str]:
        """Optional CORS regex; any localhost port in development."""
        regex = os.getenv("CORS_ORIGIN_REGEX", "")
        if regex:
            return regex
        if self.IS_DEVELOPMENT:
            return r"http://localhost:\d+|http://127\.0\.0\.1:\d+"
        return None

    def __str__(self):
        return f"Settings(ENV={self.ENV}, IS_PRODUCTION={self.IS_PRODUCTION})"


# Global settings instance
settings = Settings()
