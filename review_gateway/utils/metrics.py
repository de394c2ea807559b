"""
Metrics emission for webhook processing observability.

This module provides:
- emit_metric for outcome counters (suppressed duplicates, aborts, triggers)
- track_api_call for code-management API latency
"""

import time
from typing import Any, Optional
from contextlib import asynccontextmanager

from review_gateway.utils.logging import get_logger, log_api_call

logger = get_logger(__name__)


def emit_metric(metric_name: str, value: float = 1, **tags: Any) -> None:
    """
    Emit a metric.

    Metrics are written as structured log records so the log pipeline can
    aggregate them (Prometheus/CloudWatch exporters read the same fields).

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )


@asynccontextmanager
async def track_api_call(
    service: str,
    endpoint: str,
    method: str = "GET",
    logger_adapter: Optional[Any] = None
):
    """
    Context manager to track API call timing.

    Usage:
        async with track_api_call("github", "/repos/o/r/pulls/1"):
            response = await client.get(...)

    Args:
        service: Service name
        endpoint: API endpoint
        method: HTTP method
        logger_adapter: Logger for logging API calls (defaults to this module's)

    Yields:
        None
    """
    start_time = time.time()
    error = None

    try:
        yield
    except Exception as e:
        error = e
        raise
    finally:
        duration_ms = (time.time() - start_time) * 1000

        log_api_call(
            logger_adapter or logger,
            service=service,
            endpoint=endpoint,
            method=method,
            duration_ms=duration_ms,
            error=str(error) if error else None
        )
        emit_metric(
            "code_management.api_call.duration_ms",
            round(duration_ms, 2),
            service=service,
            failed=error is not None,
        )
