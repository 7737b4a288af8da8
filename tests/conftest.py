"""
Pytest configuration and shared fixtures.
"""

import json
from datetime import datetime, timedelta

import pytest
import requests

from channelsync.database import Entity, get_session, init_database
from channelsync.logger import get_logger, reset_logger
from channelsync.parser import FieldKind
from channelsync.storage import EntityStore


@pytest.fixture(autouse=True)
def sync_logger(tmp_path):
    """Fresh global logger per test, writing its file log under tmp_path."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    for handler in logger.logger.handlers:
        handler.close()
    reset_logger()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "entities.db"
    init_database(path)
    return path


@pytest.fixture
def db_session(db_path):
    session = get_session(db_path)
    yield session
    session.close()


@pytest.fixture
def store(db_session) -> EntityStore:
    return EntityStore(db_session)


@pytest.fixture
def add_entity(db_session):
    """Factory inserting entities; later calls get older created timestamps."""
    now = datetime(2024, 6, 1, 12, 0, 0)
    counter = [0]

    def _add(entity_id, channel=None, category=None, status=True, created=None):
        counter[0] += 1
        entity = Entity(
            id=entity_id,
            channel=channel,
            category=category,
            status=status,
            created=created or now - timedelta(minutes=counter[0]),
        )
        db_session.add(entity)
        db_session.commit()
        return entity

    return _add


class FakeResolver:
    """Stands in for ApiResolver; maps identifiers to results or exceptions."""

    def __init__(self, references=None):
        self.references = dict(references or {})
        self.calls = []

    def resolve(self, identifier, field_kind):
        self.calls.append((identifier, FieldKind(field_kind)))
        result = self.references.get(identifier)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def make_resolver():
    return FakeResolver


@pytest.fixture
def make_response():
    """Build real requests.Response objects without touching the network."""

    def _make(status_code=200, payload=None, body=None):
        resp = requests.Response()
        resp.status_code = status_code
        if body is None:
            body = "" if payload is None else json.dumps(payload)
        resp._content = body.encode("utf-8")
        return resp

    return _make
