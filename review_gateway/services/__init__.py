"""Business logic services package."""

from review_gateway.services.redis_client import (
    RedisClient,
    RedisConnectionError,
    get_redis_client
)
from review_gateway.services.repository_config import (
    RepositoryConfigService,
    get_repository_config_service
)
from review_gateway.services.code_management import (
    CodeManagementService,
    CodeManagementError,
    TransientError,
    PermanentError,
    NotFoundError,
    get_code_management_service
)

__all__ = [
    'RedisClient',
    'RedisConnectionError',
    'get_redis_client',
    'RepositoryConfigService',
    'get_repository_config_service',
    'CodeManagementService',
    'CodeManagementError',
    'TransientError',
    'PermanentError',
    'NotFoundError',
    'get_code_management_service',
]
