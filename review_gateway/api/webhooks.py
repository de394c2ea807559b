"""
Webhook endpoints for GitHub, GitLab, Bitbucket and Azure Repos.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Mapping, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from review_gateway.config import settings
from review_gateway.models.api_response import WebhookResponse
from review_gateway.models.platform import Platform
from review_gateway.services.webhook_router import WebhookEventRouter, get_webhook_router
from review_gateway.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

EVENT_HEADERS = {
    Platform.GITHUB: "X-GitHub-Event",
    Platform.GITLAB: "X-Gitlab-Event",
    Platform.BITBUCKET: "X-Event-Key",
}

DELIVERY_HEADERS = {
    Platform.GITHUB: "X-GitHub-Delivery",
    Platform.BITBUCKET: "X-Request-UUID",
}


def parse_platform(value: str) -> Optional[Platform]:
    """Accept `azure_repos` and `azure-repos` style path segments."""
    try:
        return Platform(value.lower().replace("-", "_"))
    except ValueError:
        return None


def resolve_event_name(
    platform: Platform,
    headers: Mapping[str, str],
    payload: Dict[str, Any]
) -> Optional[str]:
    """Event name from the platform's header, or the body for Azure Repos."""
    if platform == Platform.AZURE_REPOS:
        return payload.get("eventType")
    return headers.get(EVENT_HEADERS[platform])


def verify_github_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify GitHub's `X-Hub-Signature-256` header.

    Args:
        payload: Raw request body
        signature: Header value, `sha256=<hexdigest>`
        secret: Configured webhook secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not signature.startswith("sha256="):
        return False

    expected_signature = hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()

    # Constant-time comparison
    return hmac.compare_digest(signature[len("sha256="):], expected_signature)


def verify_gitlab_token(token: Optional[str], secret: str) -> bool:
    """Verify GitLab's `X-Gitlab-Token` header."""
    if not token:
        return False
    return hmac.compare_digest(token, secret)


def verify_request(platform: Platform, body: bytes, headers: Mapping[str, str]) -> bool:
    """Check the platform's shared secret when one is configured."""
    if platform == Platform.GITHUB and settings.github_webhook_secret:
        return verify_github_signature(
            body, headers.get("X-Hub-Signature-256"), settings.github_webhook_secret
        )
    if platform == Platform.GITLAB and settings.gitlab_webhook_token:
        return verify_gitlab_token(headers.get("X-Gitlab-Token"), settings.gitlab_webhook_token)
    return True


@router.post("/{platform}", response_model=WebhookResponse)
async def handle_webhook(
    platform: str,
    request: Request,
    background_tasks: BackgroundTasks,
    webhook_router: WebhookEventRouter = Depends(get_webhook_router)
) -> WebhookResponse:
    """
    Receive a webhook delivery.

    This endpoint:
    1. Verifies the platform's shared secret, when configured
    2. Filters the event against the platform's allow-list
    3. Returns 200 OK immediately and processes the event in the background

    Raises:
        HTTPException: 404 for an unknown platform, 401 for a bad signature,
            400 for a malformed payload
    """
    source = parse_platform(platform)
    if source is None:
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")

    body = await request.body()
    if not verify_request(source, body, request.headers):
        logger.warning("Invalid webhook signature received", extra={"platform": source.value})
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload: Dict[str, Any] = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_name = resolve_event_name(source, request.headers, payload)
    if not event_name or not webhook_router.can_handle(source, event_name, payload):
        logger.info(
            f"Ignoring {source.value} event {event_name}",
            extra={"platform": source.value, "event_name": event_name}
        )
        return WebhookResponse(
            status="ignored",
            message=f"Event {event_name} not processed"
        )

    delivery_header = DELIVERY_HEADERS.get(source)
    delivery_id = request.headers.get(delivery_header) if delivery_header else None

    background_tasks.add_task(
        webhook_router.handle_webhook,
        source,
        event_name,
        payload,
        delivery_id,
    )

    return WebhookResponse(
        status="accepted",
        message=f"{source.value} event {event_name} accepted for processing"
    )
