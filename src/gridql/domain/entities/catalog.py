"""Catalog entities: columns, tables, views and the per-call catalog.

Tables are owned by the caller. The engine only ever reads them: rows are
kept as the caller's mappings and are never written to.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable

from gridql.domain.errors import UnknownFunction, UnknownTable
from gridql.domain.value_objects import DeclaredType

if TYPE_CHECKING:
    from gridql.domain.entities.function import FunctionDefinition


@dataclass(frozen=True)
class Column:
    """A declared table column."""

    name: str
    declared_type: DeclaredType = DeclaredType.STRING

    @classmethod
    def from_dict(cls, data: Column | Mapping[str, Any] | str) -> Column:
        if isinstance(data, Column):
            return data
        if isinstance(data, str):
            return cls(name=data)
        return cls(
            name=str(data["name"]),
            declared_type=DeclaredType.parse(data.get("type", data.get("declared_type"))),
        )

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "type": self.declared_type.value}


@dataclass(frozen=True)
class Table:
    """A named table of rows."""

    name: str
    columns: tuple[Column, ...] = ()
    rows: tuple[Mapping[str, Any], ...] = ()
    comment: str | None = None

    @classmethod
    def from_dict(cls, data: Table | Mapping[str, Any]) -> Table:
        if isinstance(data, Table):
            return data
        name = data.get("name", data.get("title"))
        if name is None:
            raise ValueError("Table requires a name")
        return cls(
            name=str(name),
            columns=tuple(Column.from_dict(c) for c in data.get("columns") or ()),
            rows=tuple(data.get("rows") or ()),
            comment=data.get("comment"),
        )

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column_types(self) -> dict[str, DeclaredType]:
        return {c.name: c.declared_type for c in self.columns}

    def output_columns(self) -> list[str]:
        """Declared column names, or the row key set when none are declared."""
        if self.columns:
            return self.column_names
        seen: dict[str, None] = {}
        for row in self.rows:
            for key in row:
                seen.setdefault(key, None)
        return list(seen)

    def snapshot(self) -> dict[str, Any]:
        """Plain structure handed to sandboxed code (wrapped read-only there)."""
        return {
            "name": self.name,
            "title": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "rows": self.rows,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class View:
    """A saved query over the catalog's tables."""

    name: str
    query: str
    source_tables: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: View | Mapping[str, Any]) -> View:
        if isinstance(data, View):
            return data
        name = data.get("name", data.get("title"))
        if name is None:
            raise ValueError("View requires a name")
        return cls(
            name=str(name),
            query=str(data.get("query", "")),
            source_tables=tuple(data.get("sourceTables", data.get("source_tables")) or ()),
        )


ViewMaterializer = Callable[["View", "Catalog"], "tuple[list[str], list[dict[str, Any]]]"]


def _index(items: Iterable[Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    exact: dict[str, Any] = {}
    folded: dict[str, Any] = {}
    for item in items:
        exact.setdefault(item.name, item)
        folded.setdefault(item.name.lower(), item)
    return exact, folded


class Catalog:
    """The tables, views and functions visible to one engine invocation.

    Lookups try the exact name first, then a case-insensitive match.
    """

    def __init__(
        self,
        tables: Iterable[Table | Mapping[str, Any]] = (),
        views: Iterable[View | Mapping[str, Any]] = (),
        functions: Iterable[FunctionDefinition | Mapping[str, Any]] = (),
        view_materializer: ViewMaterializer | None = None,
    ) -> None:
        from gridql.domain.entities.function import FunctionDefinition

        self._tables = [Table.from_dict(t) for t in tables]
        self._views = [View.from_dict(v) for v in views]
        self._functions = [FunctionDefinition.from_dict(f) for f in functions]
        self._table_index = _index(self._tables)
        self._view_index = _index(self._views)
        self._function_index = _index(self._functions)
        self.view_materializer = view_materializer

    @staticmethod
    def _lookup(index: tuple[dict[str, Any], dict[str, Any]], name: str) -> Any:
        exact, folded = index
        found = exact.get(name)
        if found is None:
            found = folded.get(name.lower())
        return found

    @property
    def tables(self) -> list[Table]:
        return list(self._tables)

    @property
    def views(self) -> list[View]:
        return list(self._views)

    @property
    def functions(self) -> list[FunctionDefinition]:
        return list(self._functions)

    def table_names(self) -> list[str]:
        return [t.name for t in self._tables]

    def view_names(self) -> list[str]:
        return [v.name for v in self._views]

    def function_names(self) -> list[str]:
        return [f.name for f in self._functions]

    def get_table(self, name: str) -> Table | None:
        return self._lookup(self._table_index, name)

    def require_table(self, name: str) -> Table:
        table = self.get_table(name)
        if table is None:
            raise UnknownTable(name, self.table_names())
        return table

    def get_view(self, name: str) -> View | None:
        return self._lookup(self._view_index, name)

    def get_function(self, name: str) -> FunctionDefinition | None:
        return self._lookup(self._function_index, name)

    def require_function(self, name: str) -> FunctionDefinition:
        definition = self.get_function(name)
        if definition is None:
            raise UnknownFunction(name, self.function_names())
        return definition

    def view_snapshot(self, view: View) -> dict[str, Any]:
        """Plain structure for a view, including its materialized result."""
        columns: list[str] = []
        rows: list[dict[str, Any]] = []
        if self.view_materializer is not None:
            columns, rows = self.view_materializer(view, self)
        return {
            "name": view.name,
            "title": view.name,
            "query": view.query,
            "sourceTables": list(view.source_tables),
            "columns": columns,
            "rows": rows,
        }


@dataclass
class QueryResult:
    """Columns and rows produced by a query, or the error that stopped it."""

    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return "OK" if self.error is None else str(self.error)
