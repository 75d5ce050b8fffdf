# Config module
from lookbook_studio.config.settings import get_settings, reload_settings, Settings
from lookbook_studio.config.image_config import (
    PipelineStage,
    GeminiImageDefaults,
    ImageModelConfig,
    get_image_config,
    reset_image_config,
)
