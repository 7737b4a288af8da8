"""
Tests for the batch sync driver.
"""

from unittest.mock import Mock

import pytest
import requests

from channelsync.config import SyncConfig
from channelsync.database import Entity, get_session
from channelsync.parser import FieldKind
from channelsync.resolver import ApiResolver, InvalidInputError, ResolveError
from channelsync.schema import ApiReference
from channelsync.storage import EntityStore
from channelsync.sync import (
    MISSING_BASE_URL_MESSAGE,
    NO_PUBLISHED_MESSAGE,
    SyncDriver,
    SyncState,
    run_sync,
)

BASE_URL = "https://platform.test"


class SpyStore(EntityStore):
    """EntityStore recording page offsets, with optional load/query faults."""

    def __init__(self, session, unloadable=(), fail_at_offset=None):
        super().__init__(session)
        self.offsets = []
        self.unloadable = set(unloadable)
        self.fail_at_offset = fail_at_offset

    def query_published(self, offset, limit):
        self.offsets.append(offset)
        if self.fail_at_offset is not None and offset >= self.fail_at_offset:
            raise RuntimeError("database went away")
        return super().query_published(offset, limit)

    def load(self, entity_id):
        if entity_id in self.unloadable:
            return None
        return super().load(entity_id)


@pytest.fixture
def output():
    """Collects lines written to the driver's output sink."""
    return []


def make_driver(store, resolver, output, batch_size=25, base_url=BASE_URL):
    return SyncDriver(store, resolver, base_url, batch_size=batch_size, output=output.append)


class TestPreconditions:
    """Test runs that stop before paging."""

    def test_no_published_entities(self, store, add_entity, make_resolver, output, caplog):
        add_entity("e1", channel="News (id: a1)", status=False)
        resolver = make_resolver()
        driver = make_driver(store, resolver, output)

        assert driver.run() is None
        assert NO_PUBLISHED_MESSAGE in output
        assert NO_PUBLISHED_MESSAGE in caplog.text
        assert resolver.calls == []
        assert driver.context is None
        assert driver.state is SyncState.DONE

    def test_missing_base_url(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: a1)")
        resolver = make_resolver()
        driver = make_driver(store, resolver, output, base_url="  ")

        assert driver.run() is None
        assert MISSING_BASE_URL_MESSAGE in output
        assert resolver.calls == []
        assert store.load("e1").status is True

    def test_invalid_batch_size(self, store, make_resolver, output):
        with pytest.raises(ValueError):
            make_driver(store, make_resolver(), output, batch_size=0)


class TestReconciliation:
    """Test per-entity outcomes through a full run."""

    def test_updates_renamed_reference(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: abc-1)")
        resolver = make_resolver({"abc-1": ApiReference("Sports", "abc-1")})

        summary = make_driver(store, resolver, output).run()

        assert store.load("e1").channel == "Sports (id: abc-1)"
        assert summary.updated_ids == ["e1"]
        assert summary.retired_ids == []

    def test_unchanged_reference(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: abc-1)")
        resolver = make_resolver({"abc-1": ApiReference("News", "abc-1")})

        summary = make_driver(store, resolver, output).run()

        assert store.load("e1").channel == "News (id: abc-1)"
        assert summary.updated_ids == []
        assert summary.retired_ids == []

    def test_retires_dangling_reference(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: abc-1)")
        resolver = make_resolver({})

        summary = make_driver(store, resolver, output).run()

        entity = store.load("e1")
        assert summary.retired_ids == ["e1"]
        assert entity.status is False
        assert entity.channel == "News (id: abc-1)"

    def test_unparseable_value_retired_without_lookup(
        self, store, add_entity, make_resolver, output, caplog
    ):
        add_entity("e1", channel="Just a name")
        resolver = make_resolver()

        summary = make_driver(store, resolver, output).run()

        assert resolver.calls == []
        assert summary.retired_ids == ["e1"]
        assert store.load("e1").status is False
        assert "Failed to parse UUID from value: Just a name for the entity id: e1" in caplog.text

    def test_entity_without_reference_retired(self, store, add_entity, make_resolver, output):
        add_entity("e1")

        summary = make_driver(store, make_resolver(), output).run()

        assert summary.retired_ids == ["e1"]

    def test_channel_takes_priority(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: a1)", category="Tech (id: b2)")
        resolver = make_resolver({
            "a1": ApiReference("Headlines", "a1"),
            "b2": ApiReference("Science", "b2"),
        })

        make_driver(store, resolver, output).run()

        entity = store.load("e1")
        assert resolver.calls == [("a1", FieldKind.CHANNEL)]
        assert entity.channel == "Headlines (id: a1)"
        assert entity.category == "Tech (id: b2)"

    def test_category_used_without_channel(self, store, add_entity, make_resolver, output):
        add_entity("e1", category="Tech (id: b2)")
        resolver = make_resolver({"b2": ApiReference("Science", "b2")})

        make_driver(store, resolver, output).run()

        assert resolver.calls == [("b2", FieldKind.CATEGORY)]
        assert store.load("e1").category == "Science (id: b2)"

    def test_second_run_is_idempotent(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: a1)")
        add_entity("e2", channel="Tech (id: b2)")
        add_entity("e3", channel="Old (id: c3)")
        resolver = make_resolver({
            "a1": ApiReference("Headlines", "a1"),
            "b2": ApiReference("Tech", "b2"),
        })

        first = make_driver(store, resolver, output).run()
        second = make_driver(store, resolver, output).run()

        assert first.updated_ids == ["e1"]
        assert first.retired_ids == ["e3"]
        assert second.updated_ids == []
        assert second.retired_ids == []
        assert second.total_records == 2


class TestFailureIsolation:
    """Test that one bad entity never stops the run."""

    def test_resolve_error_isolated(self, store, add_entity, make_resolver, output, caplog):
        add_entity("e1", channel="News (id: a1)")
        add_entity("e2", channel="Tech (id: b2)")
        add_entity("e3", channel="Old (id: c3)")
        resolver = make_resolver({
            "a1": ApiReference("Headlines", "a1"),
            "b2": ResolveError("Platform request failed (500)"),
        })

        summary = make_driver(store, resolver, output).run()

        assert [call[0] for call in resolver.calls] == ["a1", "b2", "c3"]
        assert summary.updated_ids == ["e1"]
        assert summary.retired_ids == ["e3"]
        assert summary.failed_ids == ["e2"]
        assert summary.records_seen == 3
        e2 = store.load("e2")
        assert e2.status is True
        assert e2.channel == "Tech (id: b2)"
        assert "Error processing entity ID e2: Platform request failed (500)" in caplog.text

    def test_invalid_input_isolated(self, store, add_entity, make_resolver, output, sync_logger):
        add_entity("e1", channel="News (id: a1)")
        add_entity("e2", channel="Tech (id: b2)")
        resolver = make_resolver({
            "a1": InvalidInputError("Invalid UUID provided."),
            "b2": ApiReference("Tech", "b2"),
        })

        summary = make_driver(store, resolver, output).run()

        assert summary.success is True
        assert summary.failed_ids == ["e1"]
        assert sync_logger.metrics["errors_by_type"] == {"InvalidInputError": 1}

    def test_unloadable_entity_skipped(self, db_session, add_entity, make_resolver, output, caplog):
        add_entity("e1", channel="News (id: a1)")
        add_entity("e2", channel="Tech (id: b2)")
        store = SpyStore(db_session, unloadable={"e1"})
        resolver = make_resolver({"b2": ApiReference("Science", "b2")})

        summary = make_driver(store, resolver, output).run()

        assert summary.records_seen == 2
        assert summary.updated_ids == ["e2"]
        assert summary.retired_ids == []
        assert summary.failed_ids == []
        assert "Unable to load the entity id: e1." in caplog.text

    def test_missing_ids_do_not_block_later_lookups(
        self, store, add_entity, output, make_response
    ):
        for n in range(1, 6):
            add_entity(f"gone{n}", channel=f"Old (id: dead{n})")
        add_entity("good", channel="News (id: abc1)")
        responses = {
            f"{BASE_URL}/api/channel/dead{n}": make_response(status_code=404, body="Not Found")
            for n in range(1, 6)
        }
        responses[f"{BASE_URL}/api/channel/abc1"] = make_response(
            payload={"name": "Sports", "id": "abc1"}
        )
        session = Mock(spec=requests.Session)
        session.get.side_effect = lambda url, **kwargs: responses[url]
        resolver = ApiResolver(BASE_URL, session=session, max_retries=0, base_delay=0)

        summary = make_driver(store, resolver, output).run()

        assert summary.updated_ids == ["good"]
        assert sorted(summary.failed_ids) == [f"gone{n}" for n in range(1, 6)]
        assert summary.retired_ids == []
        assert store.load("good").channel == "Sports (id: abc1)"
        assert session.get.call_count == 6


class TestPagination:
    """Test paging and progress reporting."""

    def test_visits_every_page(self, db_session, add_entity, make_resolver, output):
        for i in range(53):
            add_entity(f"e{i:02d}", channel=f"Name {i} (id: {i:x})")
        references = {f"{i:x}": ApiReference(f"Name {i}", f"{i:x}") for i in range(53)}
        store = SpyStore(db_session)
        resolver = make_resolver(references)
        driver = make_driver(store, resolver, output, batch_size=25)

        summary = driver.run()

        assert store.offsets == [0, 25, 50]
        assert driver.context.total_pages == 3
        assert driver.context.finished == 1.0
        assert summary.records_seen == 53
        assert len(resolver.calls) == 53
        assert "Processed 25 of 53" in output
        assert "Processed 50 of 53" in output
        assert "Processed 53 of 53" in output

    def test_newest_first(self, store, add_entity, make_resolver, output):
        add_entity("newest", channel="A (id: a1)")
        add_entity("middle", channel="B (id: b2)")
        add_entity("oldest", channel="C (id: c3)")
        resolver = make_resolver()

        make_driver(store, resolver, output, batch_size=2).run()

        assert [call[0] for call in resolver.calls] == ["a1", "b2", "c3"]

    def test_retirement_deferred_until_all_pages(self, db_session, add_entity, make_resolver, output):
        """Queued entities stay published during paging so offsets stay stable."""
        for i in range(4):
            add_entity(f"e{i}", channel=f"Gone {i} (id: {i})")
        store = SpyStore(db_session)
        resolver = make_resolver()

        summary = make_driver(store, resolver, output, batch_size=1).run()

        assert store.offsets == [0, 1, 2, 3]
        assert summary.retired_ids == ["e0", "e1", "e2", "e3"]
        assert store.count_published() == 0

    def test_start_and_stop_messages(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: a1)")

        make_driver(store, make_resolver({"a1": ApiReference("News", "a1")}), output).run()

        assert output[0] == "Update Channel/Category started."
        assert output[-1] == "Update Channel/Category Completed."


class TestRunLifecycle:
    """Test run-level failure and terminal state."""

    def test_paging_failure_suppresses_retirement(
        self, db_session, add_entity, make_resolver, output, caplog
    ):
        add_entity("e1", channel="Gone (id: a1)")
        add_entity("e2", channel="Tech (id: b2)")
        store = SpyStore(db_session, fail_at_offset=1)

        driver = make_driver(store, make_resolver(), output, batch_size=1)
        summary = driver.run()

        assert summary.success is False
        assert summary.retired_ids == []
        assert store.load("e1").status is True
        assert "An error occurred during the batch processing." in caplog.text
        assert "database went away" in caplog.text
        assert driver.state is SyncState.DONE

    def test_driver_is_single_use(self, store, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: a1)")
        driver = make_driver(store, make_resolver({"a1": ApiReference("News", "a1")}), output)
        driver.run()

        with pytest.raises(RuntimeError):
            driver.run()

    def test_processed_metric(self, store, add_entity, make_resolver, output, sync_logger):
        add_entity("e1", channel="News (id: a1)")
        add_entity("e2", channel="Tech (id: b2)")
        resolver = make_resolver({"a1": ApiReference("Headlines", "a1")})

        make_driver(store, resolver, output).run()

        assert sync_logger.metrics["records_processed"] == 2
        assert sync_logger.metrics["records_updated"] == 1
        assert sync_logger.metrics["records_retired"] == 1


class TestRunSync:
    """Test the top-level entry point."""

    def test_builds_store_from_config(self, db_path, add_entity, make_resolver, output):
        add_entity("e1", channel="News (id: a1)")
        add_entity("e2", channel="Gone (id: b2)")
        config = SyncConfig(base_url=BASE_URL, db_path=db_path)
        resolver = make_resolver({"a1": ApiReference("Headlines", "a1")})

        summary = run_sync(config=config, resolver=resolver, output=output.append)

        session = get_session(db_path)
        try:
            assert session.get(Entity, "e1").channel == "Headlines (id: a1)"
            assert session.get(Entity, "e2").status is False
        finally:
            session.close()
        assert summary.updated_ids == ["e1"]
        assert summary.retired_ids == ["e2"]

    def test_batch_size_argument_wins(self, db_session, add_entity, make_resolver, output):
        for i in range(3):
            add_entity(f"e{i}", channel=f"N (id: {i})")
        store = SpyStore(db_session)
        config = SyncConfig(base_url=BASE_URL, batch_size=25)

        run_sync(batch_size=2, config=config, store=store, resolver=make_resolver(), output=output.append)

        assert store.offsets == [0, 2]

    def test_no_published_entities_makes_no_calls(self, db_path, make_resolver, output):
        config = SyncConfig(base_url=BASE_URL, db_path=db_path)
        resolver = make_resolver()

        assert run_sync(config=config, resolver=resolver, output=output.append) is None
        assert resolver.calls == []
        assert output == [NO_PUBLISHED_MESSAGE]
