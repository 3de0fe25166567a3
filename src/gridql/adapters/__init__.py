"""Adapters layer - concrete entry points onto the engine.

- Inbound adapters: query and formula parsers, the REST API
"""
