# Observability module
from lookbook_studio.observability.logger import log_generation, is_logging_enabled
from lookbook_studio.observability.metrics import (
    increment_generation,
    get_metrics,
    reset_metrics,
)
