"""
gridql - In-memory query engine with sandboxed user functions

Runs a small SQL-like dialect over caller-supplied tables and evaluates
user-authored function bodies in a restricted, time-bounded interpreter.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
