"""
Settings Module
Centralized configuration from environment variables.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Application settings from environment variables."""

    # API Keys
    gemini_api_key: Optional[str] = None

    # Host key selection: sessions start without a key and must select one
    key_selection: bool = False

    # Session / pipeline
    session_ttl_minutes: int = 120
    lookbook_variants: int = 2
    max_upload_mb: int = 10

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            gemini_api_key=os.getenv("API_KEY") or os.getenv("GEMINI_API_KEY"),
            key_selection=os.getenv("STUDIO_KEY_SELECTION", "false").lower() == "true",
            session_ttl_minutes=int(os.getenv("STUDIO_SESSION_TTL_MINUTES", "120")),
            lookbook_variants=max(1, int(os.getenv("STUDIO_LOOKBOOK_VARIANTS", "2"))),
            max_upload_mb=int(os.getenv("STUDIO_MAX_UPLOAD_MB", "10")),
        )

    def has_gemini(self) -> bool:
        """Check if a default Gemini API key is configured."""
        return bool(self.gemini_api_key)

    def sessions_start_with_key(self) -> bool:
        """New sessions are usable right away unless the host selects keys."""
        return not self.key_selection

    def to_dict(self) -> dict:
        """Export settings as dict (without sensitive keys)."""
        return {
            "gemini_configured": self.has_gemini(),
            "key_selection": self.key_selection,
            "session_ttl_minutes": self.session_ttl_minutes,
            "lookbook_variants": self.lookbook_variants,
            "max_upload_mb": self.max_upload_mb,
        }


def get_settings() -> Settings:
    """Get application settings (cached singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info(f"Settings loaded: {_settings.to_dict()}")
    return _settings


def reload_settings() -> Settings:
    """Force reload settings from environment."""
    global _settings
    _settings = Settings.from_env()
    logger.info(f"Settings reloaded: {_settings.to_dict()}")
    return _settings


# Singleton instance
_settings: Optional[Settings] = None
