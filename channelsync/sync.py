"""
Batch driver for the channel/category sync.

Pages through published entities newest first, resolving each entity's
reference against the platform API. Names are corrected as the pages are
walked; entities whose reference no longer resolves are retired once, after
the last page, by ``channelsync.finalize``.
"""

from enum import Enum
from typing import Callable, Optional

from .config import DEFAULT_BATCH_SIZE, SyncConfig, load_config
from .context import RunContext
from .database import get_session, init_database
from .finalize import SyncSummary, finalize
from .logger import StructuredLogger, get_logger
from .parser import parse_value, select_field
from .reconciler import Outcome, reconcile
from .resolver import ApiResolver
from .storage import EntityStore

NO_PUBLISHED_MESSAGE = "No published entity exists."
MISSING_BASE_URL_MESSAGE = "Third Party base url is missing."
INIT_MESSAGE = "Update Channel/Category started."
STOP_MESSAGE = "Update Channel/Category Completed."


class SyncState(str, Enum):
    NOT_STARTED = "not_started"
    PAGING = "paging"
    DRAINING = "draining"
    DONE = "done"


class SyncDriver:
    """
    Runs one sync to completion.

    A driver is single-use: once it reaches DONE a new driver (and with it a
    fresh RunContext) is needed for the next run.

    Args:
        store: Record store (count_published, query_published, load,
            load_multiple, save)
        resolver: Object with ``resolve(identifier, field_kind)``
        base_url: Platform base URL; a blank value stops the run up front
        batch_size: Entities per page
        logger: Defaults to the global logger
        output: Sink for plain progress lines
    """

    def __init__(
        self,
        store,
        resolver,
        base_url: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        logger: Optional[StructuredLogger] = None,
        output: Callable[[str], None] = print,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.store = store
        self.resolver = resolver
        self.base_url = base_url or ""
        self.batch_size = batch_size
        self.logger = logger or get_logger()
        self.output = output
        self.state = SyncState.NOT_STARTED
        self.context: Optional[RunContext] = None

    def run(self) -> Optional[SyncSummary]:
        """
        Execute the sync.

        Returns:
            SyncSummary, or None when a precondition stopped the run before
            any entity was processed
        """
        if self.state != SyncState.NOT_STARTED:
            raise RuntimeError(f"Sync driver is {self.state.value}; start a new run instead")

        total = self.store.count_published()
        if total == 0:
            return self._stop_early(NO_PUBLISHED_MESSAGE)
        if not self.base_url.strip():
            return self._stop_early(MISSING_BASE_URL_MESSAGE)

        self._report(INIT_MESSAGE)
        self.context = RunContext.start(total, self.batch_size)
        self.state = SyncState.PAGING
        success = True
        try:
            while not self.context.exhausted:
                self._process_page(self.context)
        except Exception as e:
            success = False
            self.logger.error(
                "Sync aborted while paging",
                error=str(e),
                error_type=type(e).__name__,
                page=self.context.page_index,
            )

        self.state = SyncState.DRAINING
        summary = finalize(success, self.context, self.store, self.logger)
        self.state = SyncState.DONE
        self._report(STOP_MESSAGE)
        return summary

    def _stop_early(self, message: str) -> None:
        self._report(message)
        self.state = SyncState.DONE
        return None

    def _report(self, message: str) -> None:
        self.logger.info(message)
        self.output(message)

    def _process_page(self, ctx: RunContext) -> None:
        entity_ids = self.store.query_published(offset=ctx.offset, limit=ctx.page_size)
        for entity_id in entity_ids:
            self._process_entity(entity_id, ctx)
            ctx.records_seen += 1
            self.logger.record_processed()

        message = ctx.advance_page()
        self.logger.debug(
            "Page processed",
            page=ctx.page_index,
            total_pages=ctx.total_pages,
            finished=round(ctx.finished, 3),
        )
        self.output(message)

    def _process_entity(self, entity_id: str, ctx: RunContext) -> None:
        try:
            entity = self.store.load(entity_id)
            if entity is None:
                self.logger.info(f"Unable to load the entity id: {entity_id}.")
                return

            field_kind, value = select_field(entity)
            parsed = parse_value(value)
            if parsed is None:
                self.logger.error(
                    f"Failed to parse UUID from value: {value} for the entity id: {entity_id}"
                )
                ctx.retire_ids.add(entity_id)
                return

            api_ref = self.resolver.resolve(parsed.identifier, field_kind)
            outcome = reconcile(entity, field_kind, parsed, api_ref, ctx, self.store)
        except Exception as e:
            ctx.failed_ids.add(entity_id)
            self.logger.record_failure(type(e).__name__)
            self.logger.error(f"Error processing entity ID {entity_id}: {e}")
            return

        if outcome is Outcome.UPDATED:
            self.logger.record_update()
            self.logger.debug("Entity reference renamed", entity_id=entity_id, field=field_kind.value)


def run_sync(
    batch_size: Optional[int] = None,
    config: Optional[SyncConfig] = None,
    store=None,
    resolver=None,
    logger: Optional[StructuredLogger] = None,
    output: Callable[[str], None] = print,
) -> Optional[SyncSummary]:
    """
    Run a full channel/category sync.

    Anything not supplied is built from configuration: an EntityStore on
    the configured SQLite database and an ApiResolver on the configured
    base URL. Resources opened here are closed before returning.
    """
    config = config or load_config()
    logger = logger or get_logger(level=config.log_level)
    batch_size = batch_size if batch_size is not None else config.batch_size

    session = None
    if store is None:
        init_database(config.db_path)
        session = get_session(config.db_path)
        store = EntityStore(session)
    owned_resolver = None
    if resolver is None:
        owned_resolver = resolver = ApiResolver(
            config.base_url, timeout=config.http_timeout, logger=logger
        )

    try:
        driver = SyncDriver(
            store,
            resolver,
            config.base_url,
            batch_size=batch_size,
            logger=logger,
            output=output,
        )
        return driver.run()
    finally:
        if owned_resolver is not None:
            owned_resolver.close()
        if session is not None:
            session.close()
