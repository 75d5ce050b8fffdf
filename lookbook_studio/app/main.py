"""
Lookbook Studio v1.0.0
Lookbook -> Pose extraction -> Mixer -> Environment compositor,
backed by the Gemini image model.

API ROUTES:
-----------
- /api/sessions/*          - Session state, uploads, downloads, key selection
- /api/sessions/{id}/lookbook | extract | mix | composite - Pipeline stages
- /health, /metrics        - Health and monitoring
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lookbook_studio.app.routes import router, VERSION
from lookbook_studio.config import get_settings, get_image_config
from lookbook_studio.observability import is_logging_enabled

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    image_config = get_image_config()

    logger.info("=" * 50)
    logger.info(f"Lookbook Studio v{VERSION} Starting...")
    logger.info(f"Image model: {image_config.model} ({image_config.aspect_ratio}, {image_config.image_size})")
    logger.info(f"Default API key: {'configured' if settings.has_gemini() else 'missing'}")
    logger.info(f"Key selection: {'host' if settings.key_selection else 'server'}")
    logger.info(f"Generation log: {'enabled' if is_logging_enabled() else 'disabled'}")
    logger.info("=" * 50)

    yield

    logger.info("Service shutting down...")


app = FastAPI(
    title="Lookbook Studio",
    description="Fashion visualization pipeline on a multimodal image model",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
