"""Domain entities: catalog contents and call results."""

from gridql.domain.entities.catalog import (
    Catalog,
    Column,
    QueryResult,
    Table,
    View,
    ViewMaterializer,
)
from gridql.domain.entities.function import (
    FunctionDefinition,
    FunctionParam,
    FunctionResult,
    ParamType,
)

__all__ = [
    "Catalog",
    "Column",
    "FunctionDefinition",
    "FunctionParam",
    "FunctionResult",
    "ParamType",
    "QueryResult",
    "Table",
    "View",
    "ViewMaterializer",
]
