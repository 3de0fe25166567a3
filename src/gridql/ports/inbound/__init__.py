"""Inbound ports - API contracts for the query engine."""

from gridql.ports.inbound.query_engine import (
    FunctionInput,
    QueryEngine,
    TableInput,
    ViewInput,
)

__all__ = [
    "FunctionInput",
    "QueryEngine",
    "TableInput",
    "ViewInput",
]
