import pytest

from controllers.session_controller import SessionController
from tests.fakes import FakeEngine
from utils.async_worker import InlineWorker


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def errors() -> list:
    return []


@pytest.fixture
def session(engine, errors):
    controller = SessionController(engine, worker=InlineWorker(), on_error=errors.append)
    yield controller
    controller.close()


@pytest.fixture
def loaded_session(session):
    session.load_bundle(b"bundle")
    return session
