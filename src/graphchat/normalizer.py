"""Normalization of raw Neo4j records into a uniform entity shape.

Queries bind entities under aliases this system does not control, so each
record is handed to an ordered list of extraction strategies:

1. ``PrimaryAlias``: the column the prompt templates ask the model to use.
2. ``IdentityProbe``: the first column holding something with an identity.
3. ``PassThrough``: the record itself, unprocessed, so scalar-only results
   remain inspectable.

Normalization never raises and never drops a record.
"""

from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .types import NormalizedEntity, PipelineConfig, RawRecord

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r"-?[0-9]+")


def _parse_int(text: str) -> int | None:
    text = text.strip()
    return int(text) if _INTEGER_RE.fullmatch(text) else None


def _coerce_identity(raw: object) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    # Integers serialized by 64-bit-unsafe drivers arrive as {"low": ..., "high": ...}.
    if isinstance(raw, Mapping) and "low" in raw and "high" in raw:
        try:
            return (int(raw["high"]) << 32) + (int(raw["low"]) & 0xFFFFFFFF)
        except (TypeError, ValueError):
            return None
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    if isinstance(raw, str):
        return _parse_int(raw)
    if hasattr(raw, "__index__"):
        return int(raw.__index__())  # type: ignore[union-attr]
    return None


def _identity_from_element_id(element_id: str) -> int | None:
    # Neo4j 5 element ids look like "4:<database uuid>:<id>".
    return _parse_int(element_id.rsplit(":", 1)[-1])


def entity_from_value(value: object) -> NormalizedEntity | None:
    """Return a normalized entity when ``value`` is a graph entity, else ``None``."""
    if isinstance(value, Mapping):
        if "identity" not in value and "elementId" not in value:
            return None
        element_id = str(value.get("elementId") or "")
        identity = _coerce_identity(value.get("identity"))
        labels = value.get("labels")
        if labels is None and value.get("type"):
            labels = [value["type"]]
        properties = value.get("properties") or {}
    else:
        raw_element_id = getattr(value, "element_id", None)
        if raw_element_id is None:
            return None
        element_id = str(raw_element_id)
        with warnings.catch_warnings():
            # Entity.id is deprecated in the 5.x driver but still the numeric identity.
            warnings.simplefilter("ignore", DeprecationWarning)
            identity = _coerce_identity(getattr(value, "id", None))
        labels = getattr(value, "labels", None)
        if labels is None and getattr(value, "type", None):
            labels = [value.type]  # type: ignore[attr-defined]
        properties = dict(value.items()) if hasattr(value, "items") else {}

    if isinstance(labels, str):
        labels = [labels]
    if identity is None:
        identity = _identity_from_element_id(element_id)
    if identity is None:
        return None

    return NormalizedEntity(
        id=identity,
        labels=frozenset(str(label) for label in labels or ()),
        element_id=element_id,
        properties=dict(properties) if isinstance(properties, Mapping) else {},
    )


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, record: RawRecord, position: int) -> NormalizedEntity | None:  # pragma: no cover - interface only
        ...


@dataclass(frozen=True)
class PrimaryAlias:
    alias: str
    name: str = "primary_alias"

    def extract(self, record: RawRecord, position: int) -> NormalizedEntity | None:
        if self.alias not in record:
            return None
        return entity_from_value(record[self.alias])


@dataclass(frozen=True)
class IdentityProbe:
    name: str = "identity_probe"

    def extract(self, record: RawRecord, position: int) -> NormalizedEntity | None:
        for value in record.values():
            entity = entity_from_value(value)
            if entity is not None:
                return entity
        return None


@dataclass(frozen=True)
class PassThrough:
    name: str = "pass_through"

    def extract(self, record: RawRecord, position: int) -> NormalizedEntity | None:
        properties = dict(record) if isinstance(record, Mapping) else {"value": record}
        return NormalizedEntity(id=position, properties=properties)


@dataclass
class ResultNormalizer:
    strategies: Sequence[ExtractionStrategy] = field(
        default_factory=lambda: (PrimaryAlias("n"), IdentityProbe(), PassThrough())
    )

    @classmethod
    def from_config(cls, config: PipelineConfig) -> ResultNormalizer:
        return cls(strategies=(PrimaryAlias(config.primary_alias), IdentityProbe(), PassThrough()))

    def normalize(self, records: Sequence[RawRecord]) -> list[NormalizedEntity]:
        return [self._normalize_one(record, position) for position, record in enumerate(records)]

    def _normalize_one(self, record: RawRecord, position: int) -> NormalizedEntity:
        for strategy in self.strategies:
            try:
                entity = strategy.extract(record, position)
            except Exception as exc:
                logger.debug("Strategy %s failed on record %d: %s", strategy.name, position, exc)
                continue
            if entity is not None:
                return entity
        return PassThrough().extract(record, position)  # type: ignore[return-value]
