"""
Validation of platform API payloads.

The channel and category endpoints answer with ``{"name": ..., "id": ...}``.
Anything short of a non-empty name and id means the reference is gone.
"""

from typing import Any, List, NamedTuple, Optional

REQUIRED_STR_FIELDS = ["name", "id"]


class ApiReference(NamedTuple):
    name: str
    id: str


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_api_reference(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    if not isinstance(data, dict):
        return [f"Payload must be an object, got {type(data).__name__}"]

    errors: List[str] = []
    for f in REQUIRED_STR_FIELDS:
        if f not in data or data[f] is None:
            errors.append(f"Missing required field: {f}")
        elif isinstance(data[f], int) and not isinstance(data[f], bool):
            continue  # numeric ids are accepted and stringified
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")
    return errors


def to_api_reference(data: Any) -> Optional[ApiReference]:
    """Build an ApiReference from a payload, or None if it fails validation."""
    if validate_api_reference(data):
        return None
    return ApiReference(name=str(data["name"]), id=str(data["id"]))
