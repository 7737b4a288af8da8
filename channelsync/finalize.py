"""
End-of-run handling for a sync.

Retirement is deferred to this point so that a run which fails midway
never unpublishes anything.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .context import RunContext, sorted_ids
from .logger import StructuredLogger, get_logger


@dataclass
class SyncSummary:
    success: bool
    records_seen: int = 0
    total_records: int = 0
    retired_ids: List[str] = field(default_factory=list)
    updated_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)


def finalize(
    success: bool,
    ctx: RunContext,
    store,
    logger: Optional[StructuredLogger] = None,
) -> SyncSummary:
    """
    Retire queued entities and report what the run changed.

    Args:
        success: False when an error escaped the paging loop
        ctx: Run context holding the accumulated ids (cleared on return)
        store: Record store used to load and unpublish entities
        logger: Defaults to the global logger

    Returns:
        SyncSummary; ``retired_ids`` lists only entities actually unpublished
    """
    logger = logger or get_logger()
    summary = SyncSummary(
        success=success,
        records_seen=ctx.records_seen,
        total_records=ctx.total_records,
        updated_ids=sorted_ids(ctx.updated_ids),
        failed_ids=sorted_ids(ctx.failed_ids),
    )

    if not success:
        logger.error("An error occurred during the batch processing.")
        ctx.clear_results()
        return summary

    logger.info("Channel/Category updates batch completed.")

    if ctx.retire_ids:
        queued = sorted_ids(ctx.retire_ids)
        for entity in store.load_multiple(queued):
            if entity is None:
                continue
            entity.status = False
            store.save(entity)
            summary.retired_ids.append(entity.id)
        summary.retired_ids.sort(key=str)
        logger.record_retired(len(summary.retired_ids))

        missing = sorted(set(queued) - set(summary.retired_ids), key=str)
        if missing:
            logger.info(f"Entities queued for retirement no longer exist: {', '.join(missing)}")
        logger.info(f"Unpublished entities: {', '.join(queued)}")

    if summary.updated_ids:
        logger.info(f"Updated entity ids: {', '.join(summary.updated_ids)}")

    ctx.clear_results()
    return summary
