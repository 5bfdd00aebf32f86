"""Answer questions about a Neo4j graph by generating, running and explaining Cypher."""

from .builder import PromptBuilder, render_schema
from .engine import EngineState, QueryEngine, needs_fallback
from .executor import Neo4jExecutor
from .gemini import GeminiAnswerer, GeminiConfig, GeminiQueryGenerator
from .normalizer import ResultNormalizer
from .prompts import TEMPLATE_CATALOG
from .schema import Neo4jSchemaProvider
from .store import GraphStore
from .types import (
    Answer,
    GenerationError,
    NormalizedEntity,
    PipelineConfig,
    PipelineError,
    PromptTemplate,
    QueryExecutionError,
    SchemaSnapshot,
    StoreUnavailable,
    TemplateError,
)

__all__ = [
    "TEMPLATE_CATALOG",
    "Answer",
    "EngineState",
    "GeminiAnswerer",
    "GeminiConfig",
    "GeminiQueryGenerator",
    "GenerationError",
    "GraphStore",
    "Neo4jExecutor",
    "Neo4jSchemaProvider",
    "NormalizedEntity",
    "PipelineConfig",
    "PipelineError",
    "PromptBuilder",
    "PromptTemplate",
    "QueryEngine",
    "QueryExecutionError",
    "ResultNormalizer",
    "SchemaSnapshot",
    "StoreUnavailable",
    "TemplateError",
    "needs_fallback",
    "render_schema",
]
