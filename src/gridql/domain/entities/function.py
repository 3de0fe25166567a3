"""User function definitions."""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ParamType(Enum):
    """Declared parameter and return types."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    OBJECT = "object"
    ARRAY = "array"
    TABLE = "table"
    VIEW = "view"
    ROWS = "rows"
    COLUMNS = "columns"
    ANY = "any"

    @classmethod
    def parse(cls, value: str | ParamType | None) -> ParamType:
        if isinstance(value, ParamType):
            return value
        if value is None:
            return cls.ANY
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.ANY


@dataclass(frozen=True)
class FunctionParam:
    """A declared function parameter."""

    name: str
    declared_type: ParamType = ParamType.ANY

    @classmethod
    def from_dict(cls, data: FunctionParam | Mapping[str, Any]) -> FunctionParam:
        if isinstance(data, FunctionParam):
            return data
        return cls(
            name=str(data["name"]),
            declared_type=ParamType.parse(data.get("type", data.get("declared_type"))),
        )


@dataclass(frozen=True)
class FunctionDefinition:
    """A user function: typed parameters plus a script body."""

    name: str
    params: tuple[FunctionParam, ...] = ()
    body: str = ""
    return_type: ParamType = ParamType.ANY
    description: str | None = None
    body_hash: str = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        digest = hashlib.sha256(self.body.encode("utf-8")).hexdigest()
        object.__setattr__(self, "body_hash", digest)

    @classmethod
    def from_dict(cls, data: FunctionDefinition | Mapping[str, Any]) -> FunctionDefinition:
        if isinstance(data, FunctionDefinition):
            return data
        return cls(
            name=str(data["name"]),
            params=tuple(FunctionParam.from_dict(p) for p in data.get("params") or ()),
            body=str(data.get("body", "")),
            return_type=ParamType.parse(data.get("returnType", data.get("return_type"))),
            description=data.get("description"),
        )

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.params]

    @property
    def cache_key(self) -> tuple[str, str]:
        return (self.name, self.body_hash)

    def signature(self) -> str:
        params = ", ".join(f"{p.name}: {p.declared_type.value}" for p in self.params)
        return f"{self.name}({params}): {self.return_type.value}"

    def snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "params": [{"name": p.name, "type": p.declared_type.value} for p in self.params],
            "returnType": self.return_type.value,
            "body": self.body,
            "description": self.description,
        }


@dataclass
class FunctionResult:
    """Value returned by a function call, or the error that stopped it."""

    value: Any = None
    console: list[str] = field(default_factory=list)
    error: Exception | None = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return "OK" if self.error is None else str(self.error)
