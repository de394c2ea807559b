"""
Utility modules for the review webhook gateway.
"""

from review_gateway.utils.logging import (
    get_logger,
    setup_logging,
    log_webhook_event,
    log_phase_transition,
    log_api_call,
    log_error_with_context,
)
from review_gateway.utils.metrics import (
    track_api_call,
    emit_metric,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_webhook_event",
    "log_phase_transition",
    "log_api_call",
    "log_error_with_context",
    "track_api_call",
    "emit_metric",
]
