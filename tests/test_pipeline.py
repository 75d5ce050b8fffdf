"""
Tests for the four pipeline stages against a fake image client.
"""
import asyncio

import pytest

from lookbook_studio.config import PipelineStage
from lookbook_studio.core.images import ImageRef
from lookbook_studio.core.pipeline import (
    StageError,
    StageBusyError,
    KeyRequiredError,
    run_lookbook,
    run_extraction,
    run_mixer,
    run_compositor,
)
from lookbook_studio.core.prompts import (
    POSE_SKETCH_PROMPT,
    LOOKBOOK_EXTRACTION_PROMPT,
    HEAD_SWAP_PROMPT,
)
from lookbook_studio.llm.image_client import ApiKeyError, GenerationError
from lookbook_studio.observability import get_metrics


def run(coro):
    return asyncio.run(coro)


# ==================== STAGE 1 ====================

class TestLookbookStage:

    def test_generates_two_variants(self, session, fake_client):
        images = run(run_lookbook(session, "oversized black suit", "gallery opening"))

        assert len(images) == 2
        assert session.stage(PipelineStage.LOOKBOOK).outputs == images
        assert fake_client.calls[0]["num_variants"] == 2
        assert fake_client.calls[0]["images"] == []
        assert "Visual ideas: oversized black suit." in fake_client.calls[0]["prompt"]

    def test_variant_count_follows_settings(self, session, fake_client, monkeypatch):
        from lookbook_studio.config import reload_settings
        monkeypatch.setenv("STUDIO_LOOKBOOK_VARIANTS", "4")
        reload_settings()

        images = run(run_lookbook(session, "linen shirt"))
        assert len(images) == 4

    def test_blank_ideas_rejected(self, session, fake_client):
        with pytest.raises(StageError) as exc:
            run(run_lookbook(session, "   "))

        assert exc.value.status_code == 400
        assert session.stage(PipelineStage.LOOKBOOK).error == "Please describe your visual ideas."
        assert fake_client.calls == []

    def test_empty_result_reports_failure(self, session, fake_client):
        fake_client.fail_prompts = ("fashion lookbook",)

        with pytest.raises(StageError) as exc:
            run(run_lookbook(session, "trench coat"))

        assert exc.value.status_code == 502
        state = session.stage(PipelineStage.LOOKBOOK)
        assert state.error == "Failed to generate images. Please try again."
        assert not state.is_generating
        assert get_metrics()["empty_results"] == 1

    def test_new_run_clears_previous_outputs(self, session, fake_client):
        run(run_lookbook(session, "trench coat"))
        fake_client.fail_prompts = ("fashion lookbook",)

        with pytest.raises(StageError):
            run(run_lookbook(session, "trench coat"))
        assert session.stage(PipelineStage.LOOKBOOK).outputs == []


# ==================== STAGE 2 ====================

class TestExtractionStage:

    def test_requires_source(self, session, fake_client):
        with pytest.raises(StageError):
            run(run_extraction(session))
        assert session.stage(PipelineStage.EXTRACT).error == "Please upload a source image first."

    def test_routes_results_to_shared_slots(self, session, fake_client):
        source = ImageRef(b"reference photo")
        session.set_image("source", source)

        pose, lookbook = run(run_extraction(session))

        assert session.pose == pose
        assert session.lookbook == lookbook
        assert session.source == source
        prompts = [call["prompt"] for call in fake_client.calls]
        assert POSE_SKETCH_PROMPT in prompts
        assert LOOKBOOK_EXTRACTION_PROMPT in prompts
        assert all(call["images"] == [source] for call in fake_client.calls)

    def test_both_outputs_required(self, session, fake_client):
        session.set_image("source", ImageRef(b"reference photo"))
        fake_client.fail_prompts = ("pencil sketch",)

        with pytest.raises(StageError):
            run(run_extraction(session))

        assert session.pose is None
        assert session.lookbook is None
        assert session.stage(PipelineStage.EXTRACT).error == "Failed to generate images. Please try again."


# ==================== STAGE 3 ====================

class TestMixerStage:

    def test_requires_model(self, session, fake_client):
        with pytest.raises(StageError):
            run(run_mixer(session))
        assert session.stage(PipelineStage.MIX).error == "Please provide the Model Portrait."

    def test_full_generation_requires_lookbook_and_pose(self, session, fake_client):
        session.set_image("model", ImageRef(b"model"))
        session.set_image("pose", ImageRef(b"pose"))

        with pytest.raises(StageError):
            run(run_mixer(session))
        assert session.stage(PipelineStage.MIX).error == (
            "Please provide both Lookbook and Pose images for Full Generation."
        )

    def test_head_swap_requires_source(self, session, fake_client):
        session.set_image("model", ImageRef(b"model"))

        with pytest.raises(StageError):
            run(run_mixer(session, head_swap_only=True))
        assert session.stage(PipelineStage.MIX).error.startswith("Original reference image not found.")

    def test_head_swap_ignores_lookbook_and_pose(self, session, fake_client):
        model = ImageRef(b"model")
        source = ImageRef(b"source")
        session.set_image("model", model)
        session.set_image("source", source)

        images = run(run_mixer(session, environment="", head_swap_only=True))

        assert len(images) == 1
        assert fake_client.calls[0]["prompt"] == HEAD_SWAP_PROMPT
        assert fake_client.calls[0]["images"] == [source, model]
        assert session.get_image("final_mix") == images[0]

    def test_full_generation_with_environment(self, session, fake_client):
        lookbook, pose, model = ImageRef(b"look"), ImageRef(b"pose"), ImageRef(b"model")
        session.set_image("lookbook", lookbook)
        session.set_image("pose", pose)
        session.set_image("model", model)

        run(run_mixer(session, environment="neon-lit rooftop"))

        call = fake_client.calls[0]
        assert call["images"] == [lookbook, pose, model]
        assert "Environment & Specific Details:\nneon-lit rooftop" in call["prompt"]

    def test_unexpected_error_reported(self, session, fake_client):
        session.set_image("model", ImageRef(b"model"))
        session.set_image("source", ImageRef(b"source"))
        fake_client.error = RuntimeError("socket closed")

        with pytest.raises(StageError) as exc:
            run(run_mixer(session, head_swap_only=True))

        assert exc.value.status_code == 502
        assert session.stage(PipelineStage.MIX).error == "socket closed"
        assert get_metrics()["errors"] == 1

    def test_empty_error_message_uses_default(self, session, fake_client):
        session.set_image("model", ImageRef(b"model"))
        session.set_image("source", ImageRef(b"source"))
        fake_client.error = RuntimeError("")

        with pytest.raises(StageError) as exc:
            run(run_mixer(session, head_swap_only=True))

        assert exc.value.message == "An error occurred during generation."
        assert session.stage(PipelineStage.MIX).error == "An error occurred during generation."


# ==================== STAGE 4 ====================

class TestCompositorStage:

    def _with_mix(self, session):
        session.stage(PipelineStage.MIX).outputs = [ImageRef(b"mixed character")]

    def test_requires_mixer_output(self, session, fake_client):
        with pytest.raises(StageError):
            run(run_compositor(session, "golden hour"))
        assert session.stage(PipelineStage.COMPOSITE).error == "No image available to analyze."

    def test_uses_subject_and_environment_reference(self, session, fake_client):
        self._with_mix(session)
        env = ImageRef(b"beach")
        session.set_image("environment_ref", env)

        images = run(run_compositor(session, "golden hour"))

        assert session.get_image("final_composition") == images[0]
        call = fake_client.calls[0]
        assert call["images"] == [ImageRef(b"mixed character"), env]
        assert '"golden hour"' in call["prompt"]

    def test_no_image_returned(self, session, fake_client):
        self._with_mix(session)
        fake_client.one_result = False

        with pytest.raises(StageError):
            run(run_compositor(session))
        assert session.stage(PipelineStage.COMPOSITE).error == "Failed to generate composition. Please try again."

    def test_generation_error_message_surfaces(self, session, fake_client):
        self._with_mix(session)
        fake_client.error = GenerationError("quota exceeded")

        with pytest.raises(StageError):
            run(run_compositor(session))
        assert session.stage(PipelineStage.COMPOSITE).error == "quota exceeded"

    def test_empty_error_message_uses_default(self, session, fake_client):
        self._with_mix(session)
        fake_client.error = GenerationError("")

        with pytest.raises(StageError):
            run(run_compositor(session))
        assert session.stage(PipelineStage.COMPOSITE).error == "An error occurred during composition."


# ==================== KEY HANDLING ====================

class TestKeyHandling:

    def test_key_rejection_drops_key(self, session, fake_client):
        session.select_key("user-key")
        fake_client.error = ApiKeyError("Requested entity was not found.")

        with pytest.raises(KeyRequiredError) as exc:
            run(run_lookbook(session, "silk scarf"))

        assert exc.value.status_code == 401
        assert session.has_key is False
        assert session.api_key is None
        assert session.stage(PipelineStage.LOOKBOOK).error is None
        assert get_metrics()["key_errors"] == 1

    def test_stage_blocked_without_key(self, session, fake_client):
        session.forget_key()
        with pytest.raises(KeyRequiredError):
            run(run_lookbook(session, "silk scarf"))
        assert fake_client.calls == []

    def test_busy_stage_rejected(self, session, fake_client):
        session.stage(PipelineStage.LOOKBOOK).is_generating = True
        with pytest.raises(StageBusyError) as exc:
            run(run_lookbook(session, "silk scarf"))
        assert exc.value.status_code == 409
