"""
Helpers shared by the platform payload mappers.

Mappers never raise on malformed payloads; these helpers make the
"return None when a field is missing" contract easy to follow.
"""

import copy
import re
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from review_gateway.utils.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

REFS_HEADS_PREFIX = "refs/heads/"

_BRACED_UUID = re.compile(
    r'^\{([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})\}$'
)


def dig(payload: Any, *keys: str) -> Any:
    """
    Walk nested dictionaries, returning None at the first missing key.

    Example:
        dig(payload, "pull_request", "head", "ref")
    """
    current = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def as_str(value: Any) -> Optional[str]:
    """Stringify identifiers that platforms send as ints or strings."""
    if value is None or value == "":
        return None
    return str(value)


def to_positive_int(value: Any) -> Optional[int]:
    """Coerce a PR number, returning None unless it is a positive integer."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def normalize_ref(ref: Optional[str]) -> Optional[str]:
    """Strip a leading ``refs/heads/`` from a branch ref."""
    if ref and ref.startswith(REFS_HEADS_PREFIX):
        return ref[len(REFS_HEADS_PREFIX):]
    return ref


def strip_curly_braces_from_uuids(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of a Bitbucket payload with ``{uuid}`` values unwrapped.

    Bitbucket wraps every UUID in curly braces; identifiers are stored
    without them everywhere else.
    """
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize(item) for key, item in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        if isinstance(value, str):
            match = _BRACED_UUID.match(value)
            if match:
                return match.group(1)
        return value

    return _sanitize(copy.deepcopy(payload))


def safe_build(model: Type[M], **fields: Any) -> Optional[M]:
    """
    Build a model, returning None when validation fails.

    Args:
        model: Pydantic model class
        **fields: Field values

    Returns:
        Model instance or None
    """
    try:
        return model(**fields)
    except ValidationError as e:
        logger.warning(f"Could not build {model.__name__} from payload: {e.error_count()} error(s)")
        return None
