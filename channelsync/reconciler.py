"""
Decide what happens to one entity given its platform lookup.

Name drift is fixed immediately. Entities whose reference vanished are only
queued in the run context; retiring them is left to the finalizer.
"""

from enum import Enum
from typing import Optional

from .context import RunContext
from .parser import FieldKind, ParsedReference, format_reference
from .schema import ApiReference


class Outcome(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    RETIRE = "retire"


def reconcile(
    entity,
    field_kind: FieldKind,
    parsed: ParsedReference,
    api_ref: Optional[ApiReference],
    ctx: RunContext,
    store,
) -> Outcome:
    if api_ref is None:
        ctx.retire_ids.add(entity.id)
        return Outcome.RETIRE

    if parsed.display_name == api_ref.name:
        return Outcome.UNCHANGED

    setattr(entity, field_kind.value, format_reference(api_ref.name, api_ref.id))
    store.save(entity)
    ctx.updated_ids.add(entity.id)
    return Outcome.UPDATED
