"""Neo4j driver wrapper owning the connection pool for the lifetime of the process."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from neo4j import READ_ACCESS, GraphDatabase, Session

from .types import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class GraphStore:
    """Hands out read-only sessions from a shared driver.

    The driver is thread-safe and pools connections; sessions are not, so each
    caller gets its own and must release it through :meth:`read_session`.
    """

    uri: str
    user: str
    password: str
    config: PipelineConfig
    database: str | None = None

    def __post_init__(self) -> None:
        # Managed transactions make exactly one attempt; failures surface to the caller.
        self._driver = GraphDatabase.driver(
            self.uri,
            auth=(self.user, self.password),
            max_transaction_retry_time=0,
        )

    def close(self) -> None:
        self._driver.close()
        logger.info("Closed Neo4j driver for %s", self.uri)

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        with self._driver.session(
            database=self.database,
            default_access_mode=READ_ACCESS,
            fetch_size=self.config.neo4j_fetch_size,
        ) as session:
            yield session
