"""
Metrics Module
Track generation counts per stage, images produced and failures.
"""
import threading
from typing import Dict, Any


def _empty_metrics() -> Dict[str, Any]:
    return {
        "total_generations": 0,
        "images_generated": 0,
        "empty_results": 0,
        "errors": 0,
        "key_errors": 0,
        "generations_by_stage": {},
        "total_latency_ms": 0
    }


# Thread-safe metrics storage
_lock = threading.Lock()
_metrics = _empty_metrics()


def increment_generation(
    stage: str,
    images: int,
    latency_ms: int = 0,
    error: bool = False,
    key_error: bool = False
):
    """
    Record a stage run in metrics.

    Args:
        stage: Pipeline stage name
        images: Number of images the run produced
        latency_ms: Stage latency
        error: Whether the run failed
        key_error: Whether the failure was an API key rejection
    """
    with _lock:
        _metrics["total_generations"] += 1
        _metrics["images_generated"] += images
        _metrics["total_latency_ms"] += latency_ms

        if stage:
            _metrics["generations_by_stage"][stage] = _metrics["generations_by_stage"].get(stage, 0) + 1

        if key_error:
            _metrics["key_errors"] += 1
        elif error:
            _metrics["errors"] += 1
        elif images == 0:
            _metrics["empty_results"] += 1


def get_metrics() -> Dict[str, Any]:
    """Get current metrics snapshot."""
    with _lock:
        total = _metrics["total_generations"]

        return {
            "total_generations": total,
            "images_generated": _metrics["images_generated"],
            "empty_results": _metrics["empty_results"],
            "errors": _metrics["errors"],
            "key_errors": _metrics["key_errors"],
            "generations_by_stage": dict(_metrics["generations_by_stage"]),
            "avg_latency_ms": round(_metrics["total_latency_ms"] / total) if total > 0 else 0
        }


def reset_metrics():
    """Reset all metrics (for testing)."""
    global _metrics
    with _lock:
        _metrics = _empty_metrics()
