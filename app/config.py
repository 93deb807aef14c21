"""
Application configuration with automatic environment detection
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

class Settings:
    """Application settings with automatic environment detection"""

    # Environment detection
    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV == "PROD" or ENV == "PRODUCTION"
    IS_DEVELOPMENT = not IS_PRODUCTION

    # Netlify/Render/Vercel style hosting flags
    RENDER = os.getenv("RENDER", "").lower() == "true"
    VERCEL = os.getenv("VERCEL", "").lower() == "true"
    NETLIFY = os.getenv("NETLIFY", "").lower() == "true"
    IS_CLOUD = RENDER or VERCEL or NETLIFY

    # Server configuration
    HOST = os.getenv("HOST", "0.0.0.0" if IS_CLOUD else "127.0.0.1")
    PORT = int(os.getenv("PORT", 8000))

    # Shopify (custom app token, no OAuth)
    SHOPIFY_SHOP_URL = os.getenv("SHOPIFY_SHOP_URL", "")
    SHOPIFY_TOKEN = os.getenv("SHOPIFY_TOKEN", "")
    SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-07")

    # Meta (Facebook) Marketing API
    FACEBOOK_ACCESS_TOKEN = os.getenv("FACEBOOK_ACCESS_TOKEN", "")
    FACEBOOK_AD_ACCOUNT_ID = os.getenv("FACEBOOK_AD_ACCOUNT_ID", "")
    META_API_VERSION = os.getenv("META_API_VERSION", "v18.0")

    # RapidShyp tracking (optional: without a key every order falls back to Shopify fields)
    RAPIDSHYP_API_KEY = os.getenv("RAPIDSHYP_API_KEY", "")
    RAPIDSHYP_API_BASE_URL = os.getenv("RAPIDSHYP_API_BASE_URL", "https://api.rapidshyp.com/rapidshyp/apis/v1")

    # Amazon SP-API: LWA refresh token + AWS keys for request signing
    LWA_CLIENT_ID = os.getenv("LWA_CLIENT_ID", "")
    LWA_CLIENT_SECRET = os.getenv("LWA_CLIENT_SECRET", "")
    LWA_REFRESH_TOKEN = os.getenv("LWA_REFRESH_TOKEN", os.getenv("REFRESH_TOKEN", ""))
    AWS_ACCESS_KEY = os.getenv("AWS_ACCESS_KEY", "")
    AWS_SECRET_KEY = os.getenv("AWS_SECRET_KEY", "")
    AWS_REGION = os.getenv("AWS_REGION", "eu-west-1")
    SP_API_BASE_URL = os.getenv("SP_API_BASE_URL", "https://sellingpartnerapi-eu.amazon.com")
    AMAZON_MARKETPLACE_ID = os.getenv("AMAZON_MARKETPLACE_ID", "A21TJRUUN4KGV")  # India
    SP_API_MAX_RETRIES = int(os.getenv("SP_API_MAX_RETRIES", "5"))

    # Upstream HTTP
    HTTP_TIMEOUT_SEC = float(os.getenv("HTTP_TIMEOUT_SEC", "30"))
    # Cached LWA tokens expire this many seconds before the real TTL (3600 - 600 = 50 min)
    TOKEN_EXPIRY_MARGIN_SEC = int(os.getenv("TOKEN_EXPIRY_MARGIN_SEC", "600"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG")

    # API Configuration
    API_PREFIX = "/api"

    # CORS - Fully dynamic based on ALLOWED_ORIGINS environment variable
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Get allowed CORS origins - localhost in development plus ALLOWED_ORIGINS (comma-separated)"""
        origins = []
        if self.IS_DEVELOPMENT:
            origins.extend([
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:8888",  # netlify dev
            ])
        env_origins = os.getenv("ALLOWED_ORIGINS", "")
        for origin in env_origins.split(","):
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

    def missing_for(self, *names: str) -> List[str]:
        """Return the subset of setting names that are empty."""
        return [name for name in names if not str(getattr(self, name, "") or "").strip()]

    @property
    def integrations(self) -> dict:
        """Which upstreams are configured (for /health)."""
        return {
            "shopify": not self.missing_for("SHOPIFY_SHOP_URL", "SHOPIFY_TOKEN"),
            "meta": not self.missing_for("FACEBOOK_ACCESS_TOKEN", "FACEBOOK_AD_ACCOUNT_ID"),
            "rapidshyp": bool(self.RAPIDSHYP_API_KEY),
            "amazon": not self.missing_for(*AMAZON_REQUIRED),
        }

    def __str__(self):
        return f"Settings(ENV={self.ENV}, IS_PRODUCTION={self.IS_PRODUCTION}, IS_CLOUD={self.IS_CLOUD})"


# Required for the performance pipeline (must-have sources)
PIPELINE_REQUIRED = ("SHOPIFY_SHOP_URL", "SHOPIFY_TOKEN", "FACEBOOK_ACCESS_TOKEN", "FACEBOOK_AD_ACCOUNT_ID")
ORDERS_REQUIRED = ("SHOPIFY_SHOP_URL", "SHOPIFY_TOKEN")
# Shipment actions (status update, label) need Shopify for the order and RapidShyp for the shipment
SHIPMENT_REQUIRED = ("SHOPIFY_SHOP_URL", "SHOPIFY_TOKEN", "RAPIDSHYP_API_KEY")
AMAZON_REQUIRED = ("LWA_CLIENT_ID", "LWA_CLIENT_SECRET", "LWA_REFRESH_TOKEN", "AWS_ACCESS_KEY", "AWS_SECRET_KEY")

# Global settings instance
settings = Settings()
