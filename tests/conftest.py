import pytest

from job_tracker.client import MockClient
from job_tracker.config import Settings
from job_tracker.fixtures import Fixtures
from job_tracker.schema import RlsPolicy
from job_tracker.utils import setup_logger


def pytest_configure(config):
    setup_logger("DEBUG")


@pytest.fixture
def config() -> Settings:
    return Settings(
        network_latency=0,
        connect_delay=0,
        reconnect_delay=0,
        sentry_dsn="",
        password_hash_rounds=4,
    )


@pytest.fixture
def client(config) -> MockClient:
    return MockClient(config)


@pytest.fixture
def strict_client(config) -> MockClient:
    return MockClient(config.model_copy(update={"rls_policy": RlsPolicy.strict}))


@pytest.fixture
def fixtures(client) -> Fixtures:
    return Fixtures(client)


@pytest.fixture
async def user_a(fixtures):
    return await fixtures.create_user("alice@example.com", name="Alice")


@pytest.fixture
async def user_b(fixtures):
    return await fixtures.create_user("bob@example.com", name="Bob")
