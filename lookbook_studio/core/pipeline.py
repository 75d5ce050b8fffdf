"""
Pipeline Orchestrator
Lookbook -> Pose/Lookbook extraction -> Mixer -> Environment compositor.

Each stage validates its inputs against session state, issues its generation
request(s) and writes results back into the session for later stages.
"""
import time
import logging
import asyncio
from typing import Awaitable, Callable, List

from lookbook_studio.config import PipelineStage, get_settings, get_image_config
from lookbook_studio.core.images import ImageRef
from lookbook_studio.core.session import SessionState
from lookbook_studio.core.prompts import (
    build_lookbook_prompt,
    build_mixer_request,
    build_compositor_request,
    POSE_SKETCH_PROMPT,
    LOOKBOOK_EXTRACTION_PROMPT,
)
from lookbook_studio.llm.image_client import (
    GeminiImageClient,
    ApiKeyError,
    GenerationError,
    get_image_client,
)
from lookbook_studio.observability import log_generation, increment_generation

logger = logging.getLogger(__name__)


GENERATION_FAILED = "Failed to generate images. Please try again."
MIX_FAILED = "Failed to generate final image. Please try again."
COMPOSITION_FAILED = "Failed to generate composition. Please try again."
GENERIC_GENERATION_ERROR = "An error occurred during generation."
GENERIC_COMPOSITION_ERROR = "An error occurred during composition."
KEY_REQUIRED = "API key required. Please select an API key."


class StageError(Exception):
    """Error during a pipeline stage."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class StageBusyError(StageError):
    def __init__(self, stage: PipelineStage):
        super().__init__(f"Stage '{stage.value}' is already generating", status_code=409)


class KeyRequiredError(StageError):
    def __init__(self, message: str = KEY_REQUIRED):
        super().__init__(message, status_code=401)


# ==================== STAGE RUNNER ====================

def _reject(session: SessionState, stage: PipelineStage, message: str):
    """Record an input error on the stage and abort."""
    session.stage(stage).error = message
    logger.info(f"[{session.session_id}] {stage.value} rejected: {message}")
    raise StageError(message, status_code=400)


def _check_ready(session: SessionState, stage: PipelineStage):
    if not session.has_key:
        raise KeyRequiredError()
    if session.stage(stage).is_generating:
        raise StageBusyError(stage)


async def _run_stage(
    session: SessionState,
    stage: PipelineStage,
    variants_requested: int,
    work: Callable[[GeminiImageClient], Awaitable[List[ImageRef]]],
    generic_error: str = GENERIC_GENERATION_ERROR
) -> List[ImageRef]:
    """
    Shared bookkeeping for one stage run.

    Clears the stage's previous error and outputs, runs `work` with a client
    for the session's key and always releases the generating flag. Key
    rejections drop the session's key and surface as KeyRequiredError.
    """
    state = session.stage(stage)
    state.begin()

    started = time.time()
    status = "success"
    error = None
    outputs: List[ImageRef] = []

    try:
        client = get_image_client(session.api_key)
        outputs = await work(client)
        state.outputs = outputs
        return outputs

    except ApiKeyError as e:
        status, error = "key_error", e.message
        session.forget_key()
        logger.warning(f"[{session.session_id}] {stage.value}: API key rejected, key selection required")
        raise KeyRequiredError() from e

    except StageError as e:
        status, error = "empty", e.message
        state.error = e.message
        raise

    except Exception as e:
        message = (e.message if isinstance(e, GenerationError) else str(e)) or generic_error
        status, error = "fail", message
        state.error = message
        logger.error(f"[{session.session_id}] {stage.value} failed: {e}")
        raise StageError(message, status_code=502) from e

    finally:
        state.is_generating = False
        latency_ms = int((time.time() - started) * 1000)
        log_generation(
            session_id=session.session_id,
            stage=stage.value,
            model=get_image_config().model,
            variants_requested=variants_requested,
            variants_returned=len(outputs),
            latency_ms=latency_ms,
            status=status,
            error=error,
        )
        increment_generation(
            stage=stage.value,
            images=len(outputs),
            latency_ms=latency_ms,
            error=status == "fail",
            key_error=status == "key_error",
        )


# ==================== STAGE 1: LOOKBOOK ====================

async def run_lookbook(session: SessionState, visual_ideas: str, occasion: str = "") -> List[ImageRef]:
    """Generate lookbook variants from free text."""
    stage = PipelineStage.LOOKBOOK
    _check_ready(session, stage)
    session.inputs[stage.value] = {"visual_ideas": visual_ideas, "occasion": occasion}

    if not visual_ideas or not visual_ideas.strip():
        _reject(session, stage, "Please describe your visual ideas.")

    variants = get_settings().lookbook_variants
    prompt = build_lookbook_prompt(visual_ideas, occasion or "")
    logger.info(f"[{session.session_id}] Lookbook: {variants} variant(s)")

    async def work(client: GeminiImageClient) -> List[ImageRef]:
        results = await client.generate(prompt, [], num_variants=variants)
        if not results:
            raise StageError(GENERATION_FAILED, status_code=502)
        return results

    return await _run_stage(session, stage, variants, work)


# ==================== STAGE 2: EXTRACTION ====================

async def run_extraction(session: SessionState) -> List[ImageRef]:
    """
    Extract a pose sketch and a lookbook from the source image.

    Both requests run in parallel and both must succeed. On success the
    outputs are also routed into the shared pose and lookbook slots.

    Returns:
        [pose_sketch, lookbook]
    """
    stage = PipelineStage.EXTRACT
    _check_ready(session, stage)

    source = session.source
    if source is None:
        _reject(session, stage, "Please upload a source image first.")

    async def work(client: GeminiImageClient) -> List[ImageRef]:
        pose_results, lookbook_results = await asyncio.gather(
            client.generate(POSE_SKETCH_PROMPT, [source], num_variants=1),
            client.generate(LOOKBOOK_EXTRACTION_PROMPT, [source], num_variants=1),
        )
        if not pose_results or not lookbook_results:
            raise StageError(GENERATION_FAILED, status_code=502)

        pose, lookbook = pose_results[0], lookbook_results[0]
        session.set_image("pose", pose)
        session.set_image("lookbook", lookbook)
        return [pose, lookbook]

    return await _run_stage(session, stage, 2, work)


# ==================== STAGE 3: MIXER ====================

async def run_mixer(session: SessionState, environment: str = "", head_swap_only: bool = False) -> List[ImageRef]:
    """Compose the model portrait with lookbook and pose, or head-swap it onto the source."""
    stage = PipelineStage.MIX
    _check_ready(session, stage)
    session.inputs[stage.value] = {"environment": environment, "head_swap_only": head_swap_only}

    if session.model is None:
        _reject(session, stage, "Please provide the Model Portrait.")

    if not head_swap_only and (session.lookbook is None or session.pose is None):
        _reject(session, stage, "Please provide both Lookbook and Pose images for Full Generation.")

    if head_swap_only and session.source is None:
        _reject(
            session, stage,
            "Original reference image not found. Please upload it in Tab 2 or ensure it was routed correctly."
        )

    prompt, images = build_mixer_request(
        model=session.model,
        lookbook=session.lookbook,
        pose=session.pose,
        source=session.source,
        environment=environment or "",
        head_swap_only=head_swap_only,
    )
    logger.info(f"[{session.session_id}] Mixer: head_swap_only={head_swap_only}, images={len(images)}")

    async def work(client: GeminiImageClient) -> List[ImageRef]:
        results = await client.generate(prompt, images, num_variants=1)
        if not results:
            raise StageError(MIX_FAILED, status_code=502)
        return results[:1]

    return await _run_stage(session, stage, 1, work)


# ==================== STAGE 4: COMPOSITOR ====================

async def run_compositor(session: SessionState, environment_details: str = "") -> List[ImageRef]:
    """Re-render the mixer's character into a new environment."""
    stage = PipelineStage.COMPOSITE
    _check_ready(session, stage)
    session.inputs[stage.value] = {"environment_details": environment_details}

    subject = session.get_image("final_mix")
    if subject is None:
        _reject(session, stage, "No image available to analyze.")

    prompt, images = build_compositor_request(
        subject=subject,
        environment_ref=session.environment_ref,
        environment_details=environment_details or "",
    )

    async def work(client: GeminiImageClient) -> List[ImageRef]:
        image = await client.generate_one(prompt, images)
        if image is None:
            raise StageError(COMPOSITION_FAILED, status_code=502)
        return [image]

    return await _run_stage(session, stage, 1, work, generic_error=GENERIC_COMPOSITION_ERROR)
