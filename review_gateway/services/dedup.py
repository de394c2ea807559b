"""
Duplicate webhook delivery suppression.

Platforms redeliver webhooks on timeouts and on manual retries. A delivery is
a duplicate when the same resource, event type and platform fingerprint was
seen within the TTL window.
"""

import hashlib
import json
from typing import Any, Dict, Optional

from review_gateway.mappers import get_mapped_platform
from review_gateway.models.platform import Platform
from review_gateway.services.redis_client import RedisClient, get_redis_client
from review_gateway.utils.logging import get_logger, log_error_with_context
from review_gateway.utils.metrics import emit_metric

logger = get_logger(__name__)

DEDUP_KEY_PREFIX = "webhook_dedup"


def build_fingerprint(
    platform: Platform,
    payload: Dict[str, Any],
    delivery_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Extract the small subset of a payload that identifies one delivery.

    Args:
        platform: Source platform
        payload: Raw (prepared) webhook payload
        delivery_id: Platform delivery header, when the platform sends one

    Returns:
        Fingerprint dictionary, empty for unsupported platforms
    """
    mapper = get_mapped_platform(platform)
    if mapper is None:
        return {}
    return mapper.map_fingerprint(payload, delivery_id)


def compute_request_hash(resource_id: str, event_type: str, fingerprint: Dict[str, Any]) -> str:
    """MD5 over a sorted-key JSON of the identifying fields."""
    document = {"resource_id": resource_id, "event_type": event_type, **fingerprint}
    serialized = json.dumps(document, sort_keys=True, default=str)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


class DuplicateRequestSuppressor:
    """Check-and-register webhook deliveries against a TTL cache."""

    def __init__(self, cache: Optional[RedisClient] = None, ttl_seconds: Optional[int] = None):
        """
        Initialize the suppressor.

        Args:
            cache: Redis client. If None, uses the global client.
            ttl_seconds: Suppression window. If None, will load from settings.
        """
        if ttl_seconds is None:
            from review_gateway.config import settings
            ttl_seconds = settings.dedup_ttl_seconds

        self.cache = cache or get_redis_client()
        self.ttl_ms = int(ttl_seconds * 1000)

    def _key(self, platform: Platform, resource_id: str, request_hash: str) -> str:
        return f"{DEDUP_KEY_PREFIX}:{platform.value}:{resource_id}:{request_hash}"

    async def is_duplicate(
        self,
        platform: Platform,
        resource_id: Optional[str],
        event_type: Optional[str],
        fingerprint: Dict[str, Any]
    ) -> bool:
        """
        Report whether this delivery was already seen, registering it if not.

        Args:
            platform: Source platform
            resource_id: Pull request identifier
            event_type: Platform event type
            fingerprint: Output of build_fingerprint

        Returns:
            True if the delivery is a duplicate
        """
        if not resource_id or not event_type:
            return False

        request_hash = compute_request_hash(resource_id, event_type, fingerprint)
        key = self._key(platform, resource_id, request_hash)

        try:
            created = await self.cache.set_if_absent(key, "1", self.ttl_ms)
        except Exception as e:
            # Never drop an event because the cache is unreachable
            log_error_with_context(
                logger,
                "Duplicate check failed, processing event anyway",
                e,
                platform=platform.value,
                event_name=event_type,
            )
            return False

        if not created:
            logger.info(
                f"Duplicate {platform.value} delivery suppressed for {resource_id}",
                extra={"platform": platform.value, "event_name": event_type}
            )
            emit_metric("webhook.duplicate_suppressed", platform=platform.value)
            return True

        return False
