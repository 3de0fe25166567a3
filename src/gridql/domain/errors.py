"""Error taxonomy for the query engine and function sandbox.

Lower layers raise these exceptions; the engine facade catches them and
returns them on the result object so callers can render them inline.

Hierarchy:
    GridQLError
        ParseError
        ExecError
            UnknownTable
            UnknownFunction
            SandboxError
                ScriptSyntaxError
                ScriptRuntimeError
                ReadOnlyViolation
                FunctionValueNotAllowed
                ExecutionTimeout
"""

from __future__ import annotations

from typing import Iterable


class GridQLError(Exception):
    """Base class for all engine errors."""

    kind: str = "error"

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": str(self)}


class ParseError(GridQLError):
    """Query text is malformed."""

    kind = "parse_error"


class ExecError(GridQLError):
    """Error raised while executing a plan or a function."""

    kind = "exec_error"


class _UnknownName(ExecError):
    """Lookup failure that carries the names that do exist."""

    label = "Name"

    def __init__(self, name: str, available: Iterable[str] = ()) -> None:
        self.name = name
        self.available = sorted(available, key=str.lower)
        known = ", ".join(self.available) if self.available else "none"
        super().__init__(f'{self.label} "{name}" not found (available: {known})')

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["name"] = self.name
        data["available"] = list(self.available)
        return data


class UnknownTable(_UnknownName):
    """A table referenced by a query does not exist in the catalog."""

    kind = "unknown_table"
    label = "Table"


class UnknownFunction(_UnknownName):
    """A function or aggregate referenced by a call does not exist."""

    kind = "unknown_function"
    label = "Function"


class SandboxError(ExecError):
    """Error raised by the function sandbox."""

    kind = "sandbox_error"


class ScriptSyntaxError(SandboxError):
    """Function body failed to compile."""

    kind = "script_syntax_error"

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class ScriptRuntimeError(SandboxError):
    """Function body raised while running."""

    kind = "script_runtime_error"


class ReadOnlyViolation(SandboxError):
    """Function body tried to mutate a read-only input."""

    kind = "read_only_violation"

    def __init__(self, message: str = "Cannot modify input data") -> None:
        super().__init__(message)


class FunctionValueNotAllowed(SandboxError):
    """A callable was passed where only data is accepted."""

    kind = "function_value_not_allowed"

    def __init__(self, message: str = "Function values not allowed") -> None:
        super().__init__(message)


class ExecutionTimeout(SandboxError):
    """Function body did not finish within its budget."""

    kind = "execution_timeout"

    def __init__(self, budget: float) -> None:
        self.budget = budget
        super().__init__(f"Function execution timeout after {budget:g}s")
