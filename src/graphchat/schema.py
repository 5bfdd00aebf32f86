"""Live schema introspection against Neo4j."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from neo4j import ManagedTransaction, unit_of_work

from .store import GraphStore
from .types import NodeLabel, RelationshipType, SchemaSnapshot, StoreUnavailable

logger = logging.getLogger(__name__)

LABELS_QUERY = "CALL db.labels() YIELD label RETURN label"
NODE_PROPERTIES_QUERY = (
    "CALL db.schema.nodeTypeProperties() YIELD nodeLabels, propertyName "
    "RETURN nodeLabels, propertyName"
)
RELATIONSHIPS_QUERY = (
    "MATCH (a)-[r]->(b) WITH a, r, b LIMIT $sample_size "
    "UNWIND labels(a) AS source UNWIND labels(b) AS target "
    "RETURN DISTINCT type(r) AS type, source, target"
)


@dataclass
class Neo4jSchemaProvider:
    """Fetch labels, their properties, and relationship patterns in one read session."""

    store: GraphStore

    def fetch(self) -> SchemaSnapshot:
        work = unit_of_work(timeout=self.store.config.neo4j_timeout_seconds)(self._introspect)
        try:
            with self.store.read_session() as session:
                return session.execute_read(work, self.store.config.schema_sample_size)
        except Exception as exc:
            logger.warning("Schema introspection failed: %s: %s", type(exc).__name__, exc)
            raise StoreUnavailable(
                f"Schema introspection failed: {type(exc).__name__}: {exc}", step="fetch_schema"
            ) from exc

    @staticmethod
    def _introspect(tx: ManagedTransaction, sample_size: int) -> SchemaSnapshot:
        properties: dict[str, set[str]] = {}
        for record in tx.run(LABELS_QUERY):
            properties.setdefault(record["label"], set())
        for record in tx.run(NODE_PROPERTIES_QUERY):
            name = record["propertyName"]
            for label in record["nodeLabels"] or []:
                observed = properties.setdefault(label, set())
                if name:
                    observed.add(name)

        relationships = {
            RelationshipType(name=record["type"], source=record["source"], target=record["target"])
            for record in tx.run(RELATIONSHIPS_QUERY, sample_size=sample_size)
        }

        return SchemaSnapshot(
            nodes=tuple(sorted(NodeLabel(name=label, properties=frozenset(props)) for label, props in properties.items())),
            relationships=tuple(sorted(relationships)),
        )
