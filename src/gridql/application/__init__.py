"""Application layer - query execution and the engine facade."""

from gridql.application.engine import (
    GridEngine,
    evaluate_expression,
    get_engine,
    run_function,
    run_query,
)
from gridql.application.executor import Operator, QueryExecutor, Row

__all__ = [
    "GridEngine",
    "Operator",
    "QueryExecutor",
    "Row",
    "evaluate_expression",
    "get_engine",
    "run_function",
    "run_query",
]
