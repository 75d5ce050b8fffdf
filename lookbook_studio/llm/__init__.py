# LLM module
from lookbook_studio.llm.image_client import (
    GeminiImageClient,
    GenerationError,
    ApiKeyError,
    get_image_client,
)
