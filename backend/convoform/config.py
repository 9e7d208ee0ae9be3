"""
Configuration for the convoform authoring engine and reference services.

All values come from environment variables (a local ``.env`` file is loaded
first) and are gathered on a single :data:`settings` instance.

Environment Variables:
- FORMS_API_BASE_URL: Base URL of the forms persistence API (default: http://localhost:8000)
- AI_API_BASE_URL: Base URL of the AI wording API (default: same as FORMS_API_BASE_URL)
- API_TOKEN: Bearer token sent to both APIs (optional)
- HTTP_TIMEOUT_SECONDS: Timeout for collaborator calls (default: 30)
- AUTOSAVE_DELAY_SECONDS: Quiet period before an autosave fires (default: 1.5)
- PUBLIC_ORIGIN: Origin used to build public share links (default: http://localhost:3000)
- OPENAI_API_KEY / OPENAI_MODEL: Wording service model access (default model: gpt-4.1)
- AZURE_OPENAI_ENDPOINT / AZURE_OPENAI_KEY / AZURE_OPENAI_API_VERSION: optional Azure routing
- VISUALS_DIR / VISUALS_BASE_URL: Where uploaded visuals are written and served from
- MAX_VISUAL_SIZE_BYTES: Upload size limit (default: 50 MB)
- CORS_ORIGINS: Comma separated list of allowed origins (default: *)

Usage:
    from convoform.config import settings

    delay = settings.autosave_delay_seconds
"""

import logging
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================================
# Environment helpers
# =============================================================================


def _get_optional_env(name: str, default: str) -> str:
    """Get an optional environment variable with a default value."""
    return os.getenv(name, default)


def _get_float_env(name: str, default: float) -> float:
    """Get a float environment variable, falling back on unparsable values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s=%r, using default %s", name, raw, default)
        return default


def _get_int_env(name: str, default: int) -> int:
    """Get an int environment variable, falling back on unparsable values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid int for %s=%r, using default %s", name, raw, default)
        return default


# =============================================================================
# Settings
# =============================================================================


class Settings:
    """Runtime configuration container."""

    def __init__(self):
        """Load configuration from environment variables."""
        # Collaborator endpoints
        self.forms_api_base_url = _get_optional_env(
            "FORMS_API_BASE_URL", "http://localhost:8000"
        ).rstrip("/")
        self.ai_api_base_url = _get_optional_env(
            "AI_API_BASE_URL", self.forms_api_base_url
        ).rstrip("/")
        self.api_token: Optional[str] = os.getenv("API_TOKEN") or None
        self.http_timeout_seconds = _get_float_env("HTTP_TIMEOUT_SECONDS", 30.0)

        # Editing session
        self.autosave_delay_seconds = _get_float_env("AUTOSAVE_DELAY_SECONDS", 1.5)
        self.public_origin = _get_optional_env(
            "PUBLIC_ORIGIN", "http://localhost:3000"
        ).rstrip("/")

        # Wording model
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY") or None
        self.openai_model = _get_optional_env("OPENAI_MODEL", "gpt-4.1")
        self.azure_endpoint: Optional[str] = os.getenv("AZURE_OPENAI_ENDPOINT") or None
        self.azure_api_key: Optional[str] = os.getenv("AZURE_OPENAI_KEY") or None
        self.azure_api_version = _get_optional_env(
            "AZURE_OPENAI_API_VERSION", "2024-12-01-preview"
        )

        # Visual uploads
        self.visuals_dir = _get_optional_env("VISUALS_DIR", "./visuals")
        self.visuals_base_url = _get_optional_env(
            "VISUALS_BASE_URL", f"{self.forms_api_base_url}/visuals"
        ).rstrip("/")
        self.max_visual_size_bytes = _get_int_env(
            "MAX_VISUAL_SIZE_BYTES", 50 * 1024 * 1024
        )

        # HTTP surface
        self.cors_origins: List[str] = [
            origin.strip()
            for origin in _get_optional_env("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

    def log_configuration(self):
        """Log the current configuration (without sensitive data)."""
        logger.info("convoform configuration:")
        logger.info("  Forms API: %s", self.forms_api_base_url)
        logger.info("  AI API: %s", self.ai_api_base_url)
        logger.info("  Autosave delay: %.2fs", self.autosave_delay_seconds)
        logger.info("  Wording model: %s", self.openai_model)
        logger.info("  Azure routing: %s", "enabled" if self.azure_endpoint else "disabled")
        logger.info("  Visuals dir: %s", self.visuals_dir)


# Global settings instance
settings = Settings()
