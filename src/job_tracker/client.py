"""One object wiring database, auth, storage and realtime together."""

from loguru import logger

from job_tracker.auth import MockAuth
from job_tracker.config import Settings, settings
from job_tracker.database import MockDatabase, QueryBuilder
from job_tracker.realtime import RealtimeHarness
from job_tracker.storage import MockStorage


class MockClient:
    """BaaS-style client: ``client.from_("applications").select().eq(...)``.

    Every builder is bound to the session current at the time ``from_`` is
    called; signing in as someone else afterwards does not affect it.
    """

    def __init__(self, config: Settings = settings):
        self.config = config
        self.realtime = RealtimeHarness(
            connect_delay=config.connect_delay,
            reconnect_delay=config.reconnect_delay,
            max_reconnect_attempts=config.max_reconnect_attempts,
        )
        self.database = MockDatabase(
            realtime=self.realtime,
            latency=config.network_latency,
            jitter=config.network_jitter,
            rls_policy=config.rls_policy,
        )
        self.auth = MockAuth(
            self.database,
            jwt_secret=config.jwt_secret,
            jwt_algorithm=config.jwt_algorithm,
            session_ttl=config.session_ttl,
            refresh_token_ttl=config.refresh_token_ttl,
            min_password_length=config.min_password_length,
            hash_rounds=config.password_hash_rounds,
        )
        self.storage = MockStorage(
            self.database,
            self.auth,
            storage_url=config.storage_url,
            max_upload_size=config.max_upload_size,
            default_buckets=config.default_buckets,
        )

    def from_(self, table: str) -> QueryBuilder:
        return self.database.table(table, session=self.auth.current_session)

    table = from_

    def simulate_network_error(self, enabled: bool = True) -> None:
        self.database.network_error = enabled
        logger.info(f"Simulated network error {'on' if enabled else 'off'}")

    def reset(self) -> None:
        """Forget every row, identity, object and subscription."""
        self.database.reset()
        self.auth.reset()
        self.storage.reset()
        self.realtime.disconnect()
        logger.debug("Client state reset")
