"""
Session State
Per-session images, stage results and API key availability.

A session lives in process memory for as long as one browser session keeps
using it. Idle sessions are evicted after the configured TTL.

IMAGE NAMES:
------------
Uploadable slots (PUT/DELETE):
    lookbook, pose, model        <- shared by the mixer
    source                       <- extraction reference image
    environment_ref              <- compositor scenery reference
Generated (read-only):
    lookbook_variant_<n>         <- lookbook generator outputs (1-based)
    extracted_pose, extracted_lookbook
    final_mix, final_composition
"""
import re
import time
import uuid
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lookbook_studio.config.image_config import PipelineStage
from lookbook_studio.core.images import ImageRef

logger = logging.getLogger(__name__)


UPLOAD_SLOTS = ("lookbook", "pose", "model", "source", "environment_ref")

# Download filenames used by the front-end
DOWNLOAD_FILENAMES = {
    "lookbook": "Lookbook.png",
    "pose": "Pose.png",
    "model": "Model.png",
    "source": "source-image.png",
    "environment_ref": "env-reference.png",
    "extracted_pose": "scene_draft.png",
    "extracted_lookbook": "extracted_lookbook.png",
    "final_mix": "final-mix.png",
    "final_composition": "final-composition.png",
}

_VARIANT_NAME = re.compile(r"^lookbook_variant_(\d+)$")


class SessionError(Exception):
    """Error raised for session lookups."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class SessionNotFoundError(SessionError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", status_code=404)


class UnknownImageError(SessionError):
    def __init__(self, name: str):
        super().__init__(f"Unknown image: {name}", status_code=404)


@dataclass
class StageState:
    """Run state of one pipeline stage."""
    is_generating: bool = False
    error: Optional[str] = None
    outputs: List[ImageRef] = field(default_factory=list)

    def begin(self):
        self.is_generating = True
        self.error = None
        self.outputs = []

    def to_dict(self, include_images: bool = True) -> dict:
        data = {
            "is_generating": self.is_generating,
            "error": self.error,
            "output_count": len(self.outputs),
        }
        if include_images:
            data["outputs"] = [img.to_data_url() for img in self.outputs]
        return data


@dataclass
class SessionState:
    """Everything one user session holds between pipeline stages."""
    session_id: str
    has_key: bool = True
    api_key: Optional[str] = None

    # Shared mixer inputs
    lookbook: Optional[ImageRef] = None
    pose: Optional[ImageRef] = None
    model: Optional[ImageRef] = None

    # Stage-local inputs
    source: Optional[ImageRef] = None
    environment_ref: Optional[ImageRef] = None

    # Last text inputs per stage
    inputs: Dict[str, dict] = field(default_factory=dict)

    stages: Dict[PipelineStage, StageState] = field(
        default_factory=lambda: {stage: StageState() for stage in PipelineStage}
    )

    created_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)

    # ==================== IMAGES ====================

    def set_image(self, slot: str, image: Optional[ImageRef]):
        """Set or clear an uploadable slot."""
        if slot not in UPLOAD_SLOTS:
            raise UnknownImageError(slot)
        setattr(self, slot, image)

        # A new lookbook feeds the extractor when it has no source yet
        if slot == "lookbook" and image is not None and self.source is None:
            self.source = image
            logger.debug(f"[{self.session_id}] Routed lookbook to extraction source")

    def clear_image(self, slot: str):
        self.set_image(slot, None)

    def get_image(self, name: str) -> Optional[ImageRef]:
        """Look up any named image, uploadable or generated."""
        if name in UPLOAD_SLOTS:
            return getattr(self, name)

        match = _VARIANT_NAME.match(name)
        if match:
            index = int(match.group(1)) - 1
            outputs = self.stage(PipelineStage.LOOKBOOK).outputs
            return outputs[index] if 0 <= index < len(outputs) else None

        if name == "extracted_pose":
            return self._output(PipelineStage.EXTRACT, 0)
        if name == "extracted_lookbook":
            return self._output(PipelineStage.EXTRACT, 1)
        if name == "final_mix":
            return self._output(PipelineStage.MIX, 0)
        if name == "final_composition":
            return self._output(PipelineStage.COMPOSITE, 0)

        raise UnknownImageError(name)

    def _output(self, stage: PipelineStage, index: int) -> Optional[ImageRef]:
        outputs = self.stage(stage).outputs
        return outputs[index] if index < len(outputs) else None

    def select_lookbook(self, index: int) -> Optional[ImageRef]:
        """
        Toggle a generated lookbook variant into the shared lookbook slot.

        Args:
            index: 0-based variant index

        Returns:
            The lookbook slot after the toggle
        """
        outputs = self.stage(PipelineStage.LOOKBOOK).outputs
        if not 0 <= index < len(outputs):
            raise UnknownImageError(f"lookbook_variant_{index + 1}")

        chosen = outputs[index]
        if self.lookbook == chosen:
            self.clear_image("lookbook")
        else:
            self.set_image("lookbook", chosen)
        return self.lookbook

    @staticmethod
    def download_filename(name: str) -> str:
        match = _VARIANT_NAME.match(name)
        if match:
            return f"lookbook-variant-{int(match.group(1))}.png"
        return DOWNLOAD_FILENAMES.get(name, f"{name}.png")

    # ==================== KEY ====================

    def select_key(self, api_key: Optional[str]):
        self.api_key = api_key or None
        self.has_key = True

    def forget_key(self):
        self.api_key = None
        self.has_key = False

    # ==================== STAGES ====================

    def stage(self, stage: PipelineStage) -> StageState:
        return self.stages[stage]

    def is_busy(self) -> bool:
        return any(s.is_generating for s in self.stages.values())

    def to_dict(self, include_images: bool = True) -> dict:
        """Snapshot for the API (data URLs for images)."""
        def _img(ref: Optional[ImageRef]):
            if ref is None:
                return None
            return ref.to_data_url() if include_images else True

        return {
            "session_id": self.session_id,
            "has_key": self.has_key,
            "images": {slot: _img(getattr(self, slot)) for slot in UPLOAD_SLOTS},
            "inputs": self.inputs,
            "stages": {
                stage.value: state.to_dict(include_images)
                for stage, state in self.stages.items()
            },
        }


class SessionStore:
    """Thread-safe in-memory session registry."""

    def __init__(self, ttl_minutes: int = 120):
        self._sessions: Dict[str, SessionState] = {}
        self._lock = threading.Lock()
        self.ttl_seconds = ttl_minutes * 60

    def _evict_expired(self):
        """Drop idle sessions. Caller holds the lock."""
        cutoff = time.time() - self.ttl_seconds
        expired = [
            sid for sid, s in self._sessions.items()
            if s.last_seen < cutoff and not s.is_busy()
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Evicted {len(expired)} idle session(s)")

    def create(self, has_key: bool = True) -> SessionState:
        session = SessionState(session_id=str(uuid.uuid4()), has_key=has_key)
        with self._lock:
            self._evict_expired()
            self._sessions[session.session_id] = session
        logger.info(f"Session created: {session.session_id} (has_key={has_key})")
        return session

    def get(self, session_id: str) -> SessionState:
        with self._lock:
            self._evict_expired()
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.last_seen = time.time()
            return session

    def delete(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info(f"Session deleted: {session_id}")
        return removed

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self):
        """Drop all sessions (for testing)."""
        with self._lock:
            self._sessions.clear()


# Global instance, created on first use so the TTL follows settings
_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    global _store
    if _store is None:
        from lookbook_studio.config import get_settings
        _store = SessionStore(ttl_minutes=get_settings().session_ttl_minutes)
    return _store
