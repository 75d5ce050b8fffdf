"""
Generation Logger
Structured logging for generation request tracking.
"""
import os
import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

# Ensure logs directory exists
LOGS_DIR = Path(os.getenv("STUDIO_LOGS_DIR", Path(__file__).parent.parent.parent / "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

GENERATION_LOG_FILE = LOGS_DIR / "generations.log"

# Configure generation logger
generation_logger = logging.getLogger("studio.generations")
generation_logger.setLevel(logging.INFO)

# File handler for generations
file_handler = logging.FileHandler(GENERATION_LOG_FILE, encoding="utf-8")
file_handler.setFormatter(logging.Formatter("%(message)s"))
generation_logger.addHandler(file_handler)

# Prevent propagation to root logger
generation_logger.propagate = False


def log_generation(
    session_id: str,
    stage: str,
    model: str,
    variants_requested: int,
    variants_returned: int,
    latency_ms: int,
    status: str,
    error: Optional[str] = None
):
    """
    Log a structured generation entry.

    Args:
        session_id: Session the request belongs to
        stage: Pipeline stage (lookbook/extract/mix/composite)
        model: Image model id
        variants_requested: Number of parallel requests issued
        variants_returned: Number of images received
        latency_ms: Stage latency in milliseconds
        status: success, empty, key_error or fail
        error: Error message if failed
    """
    if not is_logging_enabled():
        return

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "session_id": session_id,
        "stage": stage,
        "model": model,
        "variants_requested": variants_requested,
        "variants_returned": variants_returned,
        "latency_ms": latency_ms,
        "status": status
    }

    if error:
        entry["error"] = error

    generation_logger.info(json.dumps(entry))


def is_logging_enabled() -> bool:
    """Check if generation logging is enabled."""
    return os.getenv("STUDIO_LOGGING_ENABLED", "true").lower() == "true"
