from textwrap import dedent

from .types import PromptTemplate

PRIMARY_ALIAS_RULE = (
    "- RETURN the matched graph object itself (a node or relationship, not its properties) "
    "under the alias n, e.g. RETURN n. Use other aliases only for extra columns."
)

STRICT_TEMPLATE = PromptTemplate(
    id="schema_strict",
    notes="Exact label/property names from the live schema; equality filters.",
    text=dedent(
        """
        You translate questions into read-only Cypher for a Neo4j property graph.

        {schema}

        Rules:
        - Use only the labels, relationship types and properties listed above.
        - Only MATCH/OPTIONAL MATCH/WHERE/WITH/RETURN/ORDER BY/LIMIT are allowed.
          Never write, merge, delete or call procedures.
        """
    ).strip()
    + "\n"
    + PRIMARY_ALIAS_RULE
    + "\n"
    + dedent(
        """
        - Inline literal values in single quotes; do not use $parameters.
        - Include a LIMIT of at most 100.
        - Output only the Cypher query, no explanation and no code fences.

        Question: {question}
        Cypher:
        """
    ).strip(),
)

LENIENT_TEMPLATE = PromptTemplate(
    id="schema_lenient",
    notes="Field-mapping hints, case-insensitive matching and worked examples for "
    "questions whose wording does not line up with the stored vocabulary.",
    text=dedent(
        """
        You translate questions into read-only Cypher for a Neo4j property graph.
        A previous, literal translation of this question found nothing, so match loosely.

        {schema}

        Field mapping hints:
        - Words in the question rarely match stored names exactly. Map them to the closest
          label or property above ("genes" -> a label such as Gene, "regulated up" ->
          a property such as Regulation with a value like 'up' or 'Up').
        - Property names can be capitalised or abbreviated differently from the question.
        - Stored values may differ in case or carry extra text: ALWAYS compare strings with
          toLower(x.prop) = toLower('value') or toLower(x.prop) CONTAINS toLower('value').
        - If a relationship type is implied but unnamed, use an untyped pattern (a)--(b).

        Rules:
        - Only MATCH/OPTIONAL MATCH/WHERE/WITH/RETURN/ORDER BY/LIMIT are allowed.
          Never write, merge, delete or call procedures.
        """
    ).strip()
    + "\n"
    + PRIMARY_ALIAS_RULE
    + "\n"
    + dedent(
        """
        - Inline literal values in single quotes; do not use $parameters.
        - Include a LIMIT of at most 100.
        - Output only the Cypher query, no explanation and no code fences.

        Worked examples (adapt names to the schema above):
          Question: List all genes with Regulation up
          Cypher: MATCH (n:Gene) WHERE toLower(toString(n.Regulation)) CONTAINS 'up' RETURN n LIMIT 100

          Question: Which samples are linked to BRCA1?
          Cypher: MATCH (n:Sample)--(g:Gene) WHERE toLower(g.name) = toLower('BRCA1') RETURN n LIMIT 100

        Question: {question}
        Cypher:
        """
    ).strip(),
)

KEYWORD_TEMPLATE = PromptTemplate(
    id="keyword_scan",
    notes="Last resort: scan every property of every node for the question's key terms.",
    text=dedent(
        """
        You translate questions into read-only Cypher for a Neo4j property graph.
        Earlier structured translations of this question returned nothing.

        {schema}

        Write a query that finds nodes whose property values mention the most specific
        terms of the question, ignoring case:
          MATCH (n) WHERE any(k IN keys(n) WHERE toLower(toString(n[k])) CONTAINS toLower('<term>'))
          RETURN n LIMIT 100
        Restrict to a label from the schema when the question clearly names one.
        Return the node under the alias n. Output only the Cypher query.

        Question: {question}
        Cypher:
        """
    ).strip(),
)

TEMPLATE_CATALOG: tuple[PromptTemplate, ...] = (STRICT_TEMPLATE, LENIENT_TEMPLATE, KEYWORD_TEMPLATE)


ANSWER_PROMPT_TEMPLATE = dedent(
    """
    You answer questions about data stored in a graph database.
    Use only the query results below; do not use outside knowledge.

    Question: {question}

    Cypher that was executed:
    {query}

    Results ({count} entities):
    {entities}

    Answer in a few sentences or a short list. Name the matching entities explicitly.
    If the results are empty or do not answer the question, reply exactly: I don't know.
    """
).strip()
