"""Neo4j executor adapter used by the query pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from neo4j import ManagedTransaction, unit_of_work
from neo4j.exceptions import AuthError, ServiceUnavailable, SessionExpired

from .store import GraphStore
from .types import QueryExecutionError, RawRecord, StoreUnavailable

logger = logging.getLogger(__name__)

CONNECTIVITY_ERRORS = (ServiceUnavailable, SessionExpired, AuthError)


@dataclass
class Neo4jExecutor:
    """Execute generated Cypher in a read transaction with configured timeout and fetch size.

    Records are materialized before the session is released and keep their
    graph-entity handles (nodes, relationships) intact for normalization.
    """

    store: GraphStore

    def execute(self, query: str) -> list[RawRecord]:
        work = unit_of_work(timeout=self.store.config.neo4j_timeout_seconds)(self._run_query)
        try:
            with self.store.read_session() as session:
                return session.execute_read(work, query)
        except CONNECTIVITY_ERRORS as exc:
            raise StoreUnavailable(
                f"Neo4j unavailable: {type(exc).__name__}: {exc}", step="execute_query"
            ) from exc
        except Exception as exc:
            logger.warning("Query rejected by Neo4j: %s: %s | query=%r", type(exc).__name__, exc, query)
            raise QueryExecutionError(
                f"Neo4j execution failed: {type(exc).__name__}: {exc}", query=query
            ) from exc

    @staticmethod
    def _run_query(tx: ManagedTransaction, query: str) -> list[RawRecord]:
        result = tx.run(query)
        return [dict(record.items()) for record in result]
