"""Inbound adapters for the grid engine.

Inbound adapters turn incoming text and requests into engine operations.

Exports:
    Query Parser:
        - QueryParser: Parser that converts query text to a QueryPlan
        - QueryPlan: Parsed SELECT statement
    Formula Parser:
        - FormulaParser: Parser for ``=name(arg, ...)`` expressions

The REST API lives in ``gridql.adapters.inbound.rest_api`` and is imported
from there directly.
"""

from gridql.adapters.inbound.formula_parser import (
    Formula,
    FormulaParser,
    NameRef,
    is_formula,
)
from gridql.adapters.inbound.sql_parser import (
    AggregateFunc,
    AggregateProjection,
    ColumnProjection,
    ColumnRef,
    ComparisonOp,
    Condition,
    Connector,
    FunctionProjection,
    JoinClause,
    Literal,
    OrderByItem,
    ProjectedColumn,
    QueryParser,
    QueryPlan,
    QueryTokenizer,
    WildcardColumn,
)

__all__ = [
    # Query Parser
    "QueryParser",
    "QueryTokenizer",
    # Types
    "ComparisonOp",
    "Connector",
    "AggregateFunc",
    # Plan nodes
    "ColumnRef",
    "Literal",
    "ProjectedColumn",
    "WildcardColumn",
    "ColumnProjection",
    "AggregateProjection",
    "FunctionProjection",
    "Condition",
    "JoinClause",
    "OrderByItem",
    "QueryPlan",
    # Formula Parser
    "Formula",
    "FormulaParser",
    "NameRef",
    "is_formula",
]
