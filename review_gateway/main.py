"""
FastAPI application entry point.
"""

from fastapi import FastAPI

from review_gateway.api import webhooks
from review_gateway.config import settings
from review_gateway.utils.logging import get_logger, setup_logging

# Configure structured logging
setup_logging(settings.log_level)

logger = get_logger(__name__)

app = FastAPI(
    title="Review Webhook Gateway",
    description="Normalizes pull request webhooks from GitHub, GitLab, Bitbucket and Azure Repos into review triggers",
    version="0.1.0"
)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Review Webhook Gateway",
        "version": "0.1.0",
        "docs": "/docs"
    }


app.include_router(webhooks.router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Starting Review Webhook Gateway")

    from review_gateway.services.repository_config import get_repository_config_service
    repo_service = get_repository_config_service()
    await repo_service.initialize()
    logger.info("Repository config service initialized")

    from review_gateway.services.redis_client import get_redis_client
    redis_client = get_redis_client()
    await redis_client.initialize()
    logger.info("Redis client initialized")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup services on application shutdown."""
    logger.info("Shutting down Review Webhook Gateway")

    # Let in-flight automation jobs reach Redis before closing it
    from review_gateway.services.automation import get_automation_dispatcher
    await get_automation_dispatcher().drain()

    from review_gateway.services.repository_config import get_repository_config_service
    repo_service = get_repository_config_service()
    await repo_service.close()
    logger.info("Repository config service closed")

    from review_gateway.services.redis_client import get_redis_client
    redis_client = get_redis_client()
    await redis_client.close()
    logger.info("Redis client closed")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
