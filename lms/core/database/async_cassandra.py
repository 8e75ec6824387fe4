"""Cassandra connection and schema bootstrap for the engine.

The session comes from cassandra-asyncio-driver, whose ``Session`` adds
``aexecute()`` on top of cassandra-driver. Repositories only ever see that
session; they prepare their own statements.

Lightweight transactions (``IF NOT EXISTS`` / ``IF col = ?``) carry the
uniqueness and seat-count guarantees. The default profile reads and writes at
LOCAL_QUORUM with LOCAL_SERIAL for the Paxos phase.
"""

from collections.abc import Iterator
from typing import Any

import structlog
from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, ExecutionProfile
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from lms.config.settings import Settings, get_settings
from lms.courses.models import COURSES_TABLES_CQL
from lms.enrollments.models import ENROLLMENTS_TABLES_CQL
from lms.progress.models import PROGRESS_TABLES_CQL
from lms.tenancy.models import TENANCY_TABLES_CQL


logger = structlog.get_logger(__name__)


SCHEMA: dict[str, list[str]] = {
    "tenancy": TENANCY_TABLES_CQL,
    "courses": COURSES_TABLES_CQL,
    "enrollments": ENROLLMENTS_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
}


def schema_statements(keyspace: str) -> Iterator[tuple[str, str]]:
    """Yield ``(domain, cql)`` for every table of every domain."""
    for domain, statements in SCHEMA.items():
        for template in statements:
            yield domain, template.format(keyspace=keyspace)


def keyspace_cql(keyspace: str, settings: Settings) -> str:
    """CREATE KEYSPACE statement using the replication from settings."""
    replication = ", ".join(
        f"'{key}': {value!r}" if isinstance(value, str) else f"'{key}': {value}"
        for key, value in settings.cassandra_replication.items()
    )
    return (
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {{{replication}}} AND durable_writes = true"
    )


class AsyncCassandraConnection:
    """Process-wide cluster and session holder."""

    _cluster: Cluster | None = None
    _session: Any = None

    @staticmethod
    def _build_cluster(settings: Settings) -> Cluster:
        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        profile = ExecutionProfile(
            load_balancing_policy=TokenAwarePolicy(
                DCAwareRoundRobinPolicy(local_dc=settings.cassandra_datacenter)
            ),
            consistency_level=ConsistencyLevel.LOCAL_QUORUM,
            serial_consistency_level=ConsistencyLevel.LOCAL_SERIAL,
            request_timeout=settings.cassandra_request_timeout,
        )
        return Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            execution_profiles={EXEC_PROFILE_DEFAULT: profile},
            connect_timeout=settings.cassandra_connect_timeout,
        )

    @classmethod
    def connect(cls):
        """Return the shared session, connecting on first use.

        Raises:
            ConnectionError: If no contact point accepts the connection
        """
        if cls._session is not None:
            return cls._session

        settings = get_settings()
        cls._cluster = cls._build_cluster(settings)
        try:
            cls._session = cls._cluster.connect()
        except Exception as e:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.error(
                "cassandra_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            datacenter=settings.cassandra_datacenter,
        )
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


async def init_schema(session, keyspace: str) -> None:
    """Create the keyspace and every table if missing."""
    settings = get_settings()
    await session.aexecute(keyspace_cql(keyspace, settings))
    session.set_keyspace(keyspace)

    created: dict[str, int] = {}
    for domain, cql in schema_statements(keyspace):
        await session.aexecute(cql)
        created[domain] = created.get(domain, 0) + 1
    logger.info("cassandra_schema_ready", keyspace=keyspace, tables=created)


async def init_async_cassandra():
    """Connect and make sure the schema exists. Returns the session."""
    session = AsyncCassandraConnection.connect()
    await init_schema(session, get_settings().cassandra_keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
