"""Domain services: the function sandbox and its script language."""

from gridql.domain.services.readonly import ReadOnlyDict, ReadOnlyList, freeze, sanitize
from gridql.domain.services.sandbox import (
    CompiledUnitCache,
    FunctionSandbox,
    SandboxOutcome,
    prepare_arguments,
)
from gridql.domain.services.script_parser import parse_script

__all__ = [
    "CompiledUnitCache",
    "FunctionSandbox",
    "ReadOnlyDict",
    "ReadOnlyList",
    "SandboxOutcome",
    "freeze",
    "parse_script",
    "prepare_arguments",
    "sanitize",
]
