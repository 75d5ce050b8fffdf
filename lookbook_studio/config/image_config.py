"""
Image Model Configuration Layer
Model config for the four pipeline stages.

Environment Variables:
    - STUDIO_IMAGE_MODEL: Image model id (default: gemini-3-pro-image-preview)
    - STUDIO_IMAGE_ASPECT_RATIO: Output aspect ratio (default: 3:4)
    - STUDIO_IMAGE_SIZE: Output size bucket (default: 1K)
"""
import os
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


# ==================== ENUMS ====================

class PipelineStage(Enum):
    """Pipeline stage that issues a generation request."""
    LOOKBOOK = "lookbook"      # Lookbook generator
    EXTRACT = "extract"        # Pose / lookbook extraction
    MIX = "mix"                # Mixer
    COMPOSITE = "composite"    # Environment compositor


# ==================== MODEL CONFIG ====================

@dataclass
class GeminiImageDefaults:
    """Gemini image model defaults."""
    default_model: str = "gemini-3-pro-image-preview"
    aspect_ratio: str = "3:4"
    image_size: str = "1K"
    available_aspect_ratios: tuple = field(default_factory=lambda: (
        "1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9",
    ))
    available_sizes: tuple = field(default_factory=lambda: ("1K", "2K", "4K"))


@dataclass
class ImageModelConfig:
    """Active image model configuration."""
    model: str
    aspect_ratio: str
    image_size: str

    @classmethod
    def from_env(cls) -> "ImageModelConfig":
        """Resolve configuration from environment variables."""
        defaults = GeminiImageDefaults()

        model = os.getenv("STUDIO_IMAGE_MODEL", defaults.default_model)

        aspect_ratio = os.getenv("STUDIO_IMAGE_ASPECT_RATIO", defaults.aspect_ratio)
        if aspect_ratio not in defaults.available_aspect_ratios:
            logger.warning(f"Unknown aspect ratio '{aspect_ratio}', using {defaults.aspect_ratio}")
            aspect_ratio = defaults.aspect_ratio

        image_size = os.getenv("STUDIO_IMAGE_SIZE", defaults.image_size).upper()
        if image_size not in defaults.available_sizes:
            logger.warning(f"Unknown image size '{image_size}', using {defaults.image_size}")
            image_size = defaults.image_size

        config = cls(model=model, aspect_ratio=aspect_ratio, image_size=image_size)
        logger.info(f"Image Config: model={model}, aspect_ratio={aspect_ratio}, size={image_size}")
        return config

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "aspect_ratio": self.aspect_ratio,
            "image_size": self.image_size
        }


# ==================== SINGLETON INSTANCE ====================

_image_config: Optional[ImageModelConfig] = None


def get_image_config() -> ImageModelConfig:
    """Get active image model configuration."""
    global _image_config
    if _image_config is None:
        _image_config = ImageModelConfig.from_env()
    return _image_config


def reset_image_config():
    """Reset config (for testing)."""
    global _image_config
    _image_config = None
