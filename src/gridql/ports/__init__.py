"""Ports - interfaces between the engine and its callers."""

from gridql.ports.inbound import QueryEngine

__all__ = ["QueryEngine"]
