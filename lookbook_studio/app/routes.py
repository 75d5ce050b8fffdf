"""
API Routes for Lookbook Studio
Session state, uploads/downloads and the four pipeline stages.
"""
import logging
from typing import Optional
from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from lookbook_studio.config import get_settings, get_image_config
from lookbook_studio.core.session import (
    SessionState,
    SessionError,
    UPLOAD_SLOTS,
    get_session_store,
)
from lookbook_studio.core.validation import ValidationError, validate_image_upload
from lookbook_studio.core.pipeline import (
    StageError,
    run_lookbook,
    run_extraction,
    run_mixer,
    run_compositor,
)
from lookbook_studio.observability import get_metrics, is_logging_enabled

logger = logging.getLogger(__name__)

router = APIRouter()

VERSION = "1.0.0"


def _get_session(session_id: str) -> SessionState:
    try:
        return get_session_store().get(session_id)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


def _stage_response(session: SessionState, stage: str, images: list) -> dict:
    return {
        "stage": stage,
        "images": [image.to_data_url() for image in images],
        "session": session.to_dict(include_images=False),
    }


async def _await_stage(session: SessionState, stage: str, coro) -> dict:
    """Await a stage coroutine and translate its errors."""
    try:
        images = await coro
    except StageError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _stage_response(session, stage, images)


# ==================== PUBLIC ENDPOINTS ====================

@router.get("/health")
async def health_check():
    """Health check with configuration info."""
    settings = get_settings()
    metrics = get_metrics()

    return {
        "status": "ok",
        "version": VERSION,
        "image_model": get_image_config().to_dict(),
        "settings": settings.to_dict(),
        "sessions": get_session_store().count(),
        "observability": {
            "logging_enabled": is_logging_enabled(),
            "total_generations": metrics["total_generations"],
            "images_generated": metrics["images_generated"],
        },
        "stages": ["lookbook", "extract", "mix", "composite"],
    }


@router.get("/metrics")
async def get_metrics_endpoint():
    """Get generation metrics for monitoring."""
    return JSONResponse(content=get_metrics())


# ==================== SESSIONS ====================

@router.post("/api/sessions")
async def create_session():
    """Start a session. Without host key selection it is usable right away."""
    session = get_session_store().create(has_key=get_settings().sessions_start_with_key())
    return JSONResponse(
        content={"session_id": session.session_id, "has_key": session.has_key},
        status_code=201
    )


@router.get("/api/sessions/{session_id}")
async def get_session(
    session_id: str,
    include_images: bool = Query(True, description="Embed images as data URLs")
):
    """Session snapshot."""
    return _get_session(session_id).to_dict(include_images=include_images)


@router.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    if not get_session_store().delete(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"deleted": True}


# ==================== API KEY ====================

@router.get("/api/sessions/{session_id}/key")
async def get_key_status(session_id: str):
    session = _get_session(session_id)
    return {
        "has_key": session.has_key,
        "key_selection": get_settings().key_selection,
    }


@router.post("/api/sessions/{session_id}/key")
async def select_key(
    session_id: str,
    api_key: Optional[str] = Form(None, description="Gemini API key for this session")
):
    """
    Select the API key used by this session.

    An empty key falls back to the server's configured key, if any.
    """
    session = _get_session(session_id)
    api_key = (api_key or "").strip() or None

    if api_key is None and not get_settings().has_gemini():
        raise HTTPException(status_code=400, detail="api_key is required")

    session.select_key(api_key)
    logger.info(f"[{session_id}] API key selected (own_key={api_key is not None})")
    return {"has_key": session.has_key}


# ==================== IMAGES ====================

@router.put("/api/sessions/{session_id}/images/{slot}")
async def upload_image(
    session_id: str,
    slot: str,
    image: UploadFile = File(..., description="Image file")
):
    """Upload an image into a slot: lookbook, pose, model, source or environment_ref."""
    session = _get_session(session_id)
    if slot not in UPLOAD_SLOTS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown slot: {slot}. Allowed: {', '.join(UPLOAD_SLOTS)}"
        )

    try:
        ref = await validate_image_upload(image, image.content_type, get_settings().max_upload_mb)
    except ValidationError as ve:
        raise HTTPException(status_code=ve.status_code, detail=ve.message)

    session.set_image(slot, ref)
    logger.info(f"[{session_id}] Uploaded {slot} ({ref.mime_type}, {len(ref.data)} bytes)")
    return {"slot": slot, "session": session.to_dict(include_images=False)}


@router.delete("/api/sessions/{session_id}/images/{slot}")
async def remove_image(session_id: str, slot: str):
    session = _get_session(session_id)
    try:
        session.clear_image(slot)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"slot": slot, "session": session.to_dict(include_images=False)}


@router.get("/api/sessions/{session_id}/images/{name}/download")
async def download_image(session_id: str, name: str):
    """Download any session image as an attachment."""
    session = _get_session(session_id)
    try:
        image = session.get_image(name)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if image is None:
        raise HTTPException(status_code=404, detail=f"No image in {name}")

    filename = session.download_filename(name)
    return Response(
        content=image.data,
        media_type=image.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/api/sessions/{session_id}/lookbook/select")
async def select_lookbook(
    session_id: str,
    variant: int = Form(..., description="Lookbook variant number (1-based)")
):
    """Toggle a generated lookbook variant as the mixer's lookbook."""
    session = _get_session(session_id)
    try:
        selected = session.select_lookbook(variant - 1)
    except SessionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"selected": selected is not None, "session": session.to_dict(include_images=False)}


# ==================== PIPELINE STAGES ====================

@router.post("/api/sessions/{session_id}/lookbook")
async def generate_lookbook(
    session_id: str,
    visual_ideas: str = Form("", description="Garments, colors, accessories"),
    occasion: str = Form("", description="Context or occasion")
):
    """Stage 1: lookbook generator."""
    session = _get_session(session_id)
    return await _await_stage(session, "lookbook", run_lookbook(session, visual_ideas, occasion))


@router.post("/api/sessions/{session_id}/extract")
async def extract_pose_and_lookbook(session_id: str):
    """Stage 2: pose sketch + lookbook extraction from the source image."""
    session = _get_session(session_id)
    return await _await_stage(session, "extract", run_extraction(session))


@router.post("/api/sessions/{session_id}/mix")
async def mix(
    session_id: str,
    environment: str = Form("", description="Background, lighting mood or small details"),
    head_swap_only: bool = Form(False, description="Only swap the head onto the source image")
):
    """Stage 3: the mixer."""
    session = _get_session(session_id)
    return await _await_stage(session, "mix", run_mixer(session, environment, head_swap_only))


@router.post("/api/sessions/{session_id}/composite")
async def composite(
    session_id: str,
    environment_details: str = Form("", description="Mood, lighting and scene details")
):
    """Stage 4: environment compositor."""
    session = _get_session(session_id)
    return await _await_stage(session, "composite", run_compositor(session, environment_details))
