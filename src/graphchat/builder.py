"""Binds a schema snapshot and a question into a prompt template."""

from __future__ import annotations

from dataclasses import dataclass
from string import Formatter

from .types import PromptTemplate, ResolvedPrompt, SchemaSnapshot, TemplateError

REQUIRED_PLACEHOLDERS = frozenset({"schema", "question"})


def render_schema(schema: SchemaSnapshot) -> str:
    """Render every label, its properties, and every relationship pattern in sorted order."""
    lines = ["Graph schema:", "- Node labels and properties:"]
    if schema.nodes:
        for node in sorted(schema.nodes):
            props = ", ".join(sorted(node.properties)) or "no properties"
            lines.append(f"  {node.name}({props})")
    else:
        lines.append("  (none)")

    lines.append("- Relationships:")
    if schema.relationships:
        for rel in sorted(schema.relationships):
            lines.append(f"  (:{rel.source})-[:{rel.name}]->(:{rel.target})")
    else:
        lines.append("  (none)")
    return "\n".join(lines)


def _placeholders(text: str) -> set[str]:
    try:
        return {field for _, field, _, _ in Formatter().parse(text) if field is not None}
    except ValueError as exc:
        raise TemplateError(f"Template is not a valid format string: {exc}", step="build_prompt") from exc


@dataclass
class PromptBuilder:
    """Resolve templates into prompts. Pure: same inputs, byte-identical output."""

    def build(self, template: PromptTemplate, schema: SchemaSnapshot, question: str) -> ResolvedPrompt:
        fields = _placeholders(template.text)
        missing = REQUIRED_PLACEHOLDERS - fields
        if missing:
            raise TemplateError(
                f"Template '{template.id}' is missing placeholder(s): {', '.join(sorted(missing))}",
                step="build_prompt",
            )
        unknown = fields - REQUIRED_PLACEHOLDERS
        if unknown:
            raise TemplateError(
                f"Template '{template.id}' has unknown placeholder(s): {', '.join(sorted(unknown))}",
                step="build_prompt",
            )

        text = template.text.format(schema=render_schema(schema), question=question.strip())
        return ResolvedPrompt(template_id=template.id, text=text)
