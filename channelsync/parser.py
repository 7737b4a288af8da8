import re
from enum import Enum
from typing import Any, NamedTuple, Optional, Tuple

REFERENCE_PATTERN = re.compile(r"^(.*?)\s*\(id:\s*([0-9a-fA-F\-]+)\)$")


class FieldKind(str, Enum):
    """Reference field on an entity; the value doubles as the API path segment."""

    CHANNEL = "channel"
    CATEGORY = "category"


# Channel wins when both fields are populated.
FIELD_PRIORITY = (FieldKind.CHANNEL, FieldKind.CATEGORY)


class ParsedReference(NamedTuple):
    raw_match: str
    display_name: str
    identifier: str


def parse_value(raw: Any) -> Optional[ParsedReference]:
    """Split "<name> (id: <uuid>)" into its parts; None if it doesn't match."""
    if not isinstance(raw, str) or not raw:
        return None
    match = REFERENCE_PATTERN.match(raw)
    if match is None:
        return None
    return ParsedReference(
        raw_match=match.group(0),
        display_name=match.group(1).strip(),
        identifier=match.group(2),
    )


def select_field(entity) -> Tuple[FieldKind, Optional[str]]:
    """Pick the first populated reference field in priority order."""
    for kind in FIELD_PRIORITY:
        value = getattr(entity, kind.value, None)
        if value:
            return kind, value
    return FieldKind.CATEGORY, None


def format_reference(name: str, identifier: str) -> str:
    return f"{name} (id: {identifier})"
