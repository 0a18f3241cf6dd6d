"""
Shared fixtures: an in-memory SQLite store, a recording sender and a scripted
decision engine wired into the real gateway and processor.
"""

import pytest

from src.scheduling.gateway import EmailGateway
from src.scheduling.processor import SchedulingProcessor
from src.storage.database import create_db_engine, create_session_factory, init_db
from src.storage.session_repository import SqlSessionRepository
from tests.fakes import ASSISTANT, FakeSender, ScriptedDecisionEngine


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory):
    return SqlSessionRepository(session_factory)


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def engine():
    return ScriptedDecisionEngine()


@pytest.fixture
def gateway(sender):
    return EmailGateway(sender, ASSISTANT)


@pytest.fixture
def processor(repository, gateway, engine):
    return SchedulingProcessor(
        repository=repository,
        gateway=gateway,
        decision_engine=engine,
        assistant_address=ASSISTANT,
    )
