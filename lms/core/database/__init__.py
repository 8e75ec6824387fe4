"""Database connection module for the LMS engine."""

from lms.core.database.async_cassandra import (
    AsyncCassandraConnection,
    init_async_cassandra,
    init_schema,
    shutdown_async_cassandra,
)


__all__ = [
    "AsyncCassandraConnection",
    "init_async_cassandra",
    "init_schema",
    "shutdown_async_cassandra",
]
