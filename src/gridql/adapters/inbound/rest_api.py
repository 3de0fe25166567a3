"""REST API adapter for the grid engine.

This module provides a FastAPI-based REST API for running queries, user
functions and formulas. Every request carries its own tables, views and
functions; the server keeps no data between requests.

Endpoints:
    GET /health - Health check
    POST /query - Run a query
    POST /function - Run a user function
    POST /evaluate - Evaluate a formula expression

Usage:
    from gridql.adapters.inbound.rest_api import create_app
    from gridql.application import GridEngine

    app = create_app(GridEngine())
    # Run with uvicorn: uvicorn app:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import math
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from gridql import __version__
from gridql.application import GridEngine
from gridql.domain.errors import GridQLError
from gridql.domain.value_objects import is_array, is_object


class ColumnModel(BaseModel):
    """A declared table column."""

    name: str = Field(..., description="Column name")
    type: str = Field("string", description="Declared type")


class TableModel(BaseModel):
    """A table and its rows."""

    name: str = Field(..., description="Table name")
    columns: list[ColumnModel] = Field(default_factory=list, description="Declared columns")
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Table rows")
    comment: str | None = Field(None, description="Optional comment")


class ViewModel(BaseModel):
    """A saved query."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="View name")
    query: str = Field(..., description="View query")
    source_tables: list[str] = Field(
        default_factory=list, alias="sourceTables", description="Tables the view reads"
    )


class ParamModel(BaseModel):
    """A declared function parameter."""

    name: str = Field(..., description="Parameter name")
    type: str = Field("any", description="Parameter type")


class FunctionModel(BaseModel):
    """A user function definition."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Function name")
    params: list[ParamModel] = Field(default_factory=list, description="Parameters")
    body: str = Field("", description="Function body")
    return_type: str = Field("any", alias="returnType", description="Declared return type")
    description: str | None = Field(None, description="Optional description")


class CatalogRequest(BaseModel):
    """Tables, views and functions visible to one request."""

    tables: list[TableModel] = Field(default_factory=list)
    views: list[ViewModel] = Field(default_factory=list)
    functions: list[FunctionModel] = Field(default_factory=list)

    def catalog_kwargs(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "tables": [t.model_dump() for t in self.tables],
            "views": [v.model_dump(by_alias=True) for v in self.views],
            "functions": [f.model_dump(by_alias=True) for f in self.functions],
        }


class QueryRequest(CatalogRequest):
    """Request model for query execution."""

    query: str = Field(..., description="Query text")


class FunctionRequest(CatalogRequest):
    """Request model for a function call."""

    function: FunctionModel = Field(..., description="Function to run")
    args: list[Any] = Field(default_factory=list, description="Positional arguments")


class EvaluateRequest(CatalogRequest):
    """Request model for formula evaluation."""

    expression: str = Field(..., description="Formula such as =sum(orders.rows, 'amount')")


class ErrorModel(BaseModel):
    """A typed engine error."""

    kind: str = Field(..., description="Error kind")
    message: str = Field(..., description="Error message")
    name: str | None = Field(None, description="Unknown name, for lookup errors")
    available: list[str] | None = Field(None, description="Known names, for lookup errors")


class QueryResponse(BaseModel):
    """Response model for query execution."""

    success: bool = Field(..., description="Whether the query succeeded")
    message: str = Field("", description="Status or error message")
    columns: list[str] = Field(default_factory=list, description="Column names")
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Result rows")
    error: ErrorModel | None = Field(None, description="Error details")


class FunctionResponse(BaseModel):
    """Response model for function calls and formulas."""

    success: bool = Field(..., description="Whether the call succeeded")
    message: str = Field("", description="Status or error message")
    value: Any = Field(None, description="Returned value")
    console: list[str] = Field(default_factory=list, description="Captured console output")
    duration: float = Field(0.0, description="Execution time in seconds")
    error: ErrorModel | None = Field(None, description="Error details")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")


def _json_safe(value: Any) -> Any:
    """Replace non-finite floats, which JSON cannot carry, with null."""
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if is_object(value):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if is_array(value):
        return [_json_safe(v) for v in value]
    return value


def _error_model(error: Exception | None) -> ErrorModel | None:
    if error is None:
        return None
    if isinstance(error, GridQLError):
        return ErrorModel(**error.to_dict())
    return ErrorModel(kind="error", message=str(error))


def create_app(engine: GridEngine) -> FastAPI:
    """Create a FastAPI application for the grid engine.

    Args:
        engine: The engine to use.

    Returns:
        A configured FastAPI application.
    """
    app = FastAPI(
        title="gridql API",
        description="Query in-memory tables and run sandboxed user functions",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.post("/query", response_model=QueryResponse, tags=["Query"])
    def run_query(request: QueryRequest) -> QueryResponse:
        """Run a query against the request's tables."""
        result = engine.run_query(request.query, **request.catalog_kwargs())
        return QueryResponse(
            success=result.success,
            message=result.message,
            columns=result.columns,
            rows=_json_safe(result.rows),
            error=_error_model(result.error),
        )

    @app.post("/function", response_model=FunctionResponse, tags=["Functions"])
    def run_function(request: FunctionRequest) -> FunctionResponse:
        """Run a user function with positional arguments."""
        result = engine.run_function(
            request.function.model_dump(by_alias=True),
            request.args,
            **request.catalog_kwargs(),
        )
        return FunctionResponse(
            success=result.success,
            message=result.message,
            value=_json_safe(result.value),
            console=result.console,
            duration=result.duration,
            error=_error_model(result.error),
        )

    @app.post("/evaluate", response_model=FunctionResponse, tags=["Functions"])
    def evaluate(request: EvaluateRequest) -> FunctionResponse:
        """Evaluate a formula expression."""
        result = engine.evaluate_expression(request.expression, **request.catalog_kwargs())
        return FunctionResponse(
            success=result.success,
            message=result.message,
            value=_json_safe(result.value),
            console=result.console,
            duration=result.duration,
            error=_error_model(result.error),
        )

    return app


def run_server(
    engine: GridEngine,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> None:
    """Run the REST API server.

    Args:
        engine: The grid engine.
        host: Host to bind to.
        port: Port to bind to.
    """
    import uvicorn

    app = create_app(engine)
    uvicorn.run(app, host=host, port=port)


def main() -> None:
    """Console entry point: configure observability and serve."""
    from gridql.infrastructure import get_config, setup_logging, setup_metrics, setup_tracing

    config = get_config()
    setup_logging(config.observability.log_level, config.observability.log_format)
    setup_tracing(config.observability.otel_service_name, config.observability.otel_endpoint)
    setup_metrics(config.server.metrics_port)
    run_server(GridEngine(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
