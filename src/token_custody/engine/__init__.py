"""Custody engine: ORM models, services and the engine client that owns them."""

from token_custody.engine.client import CustodyEngine

__all__ = ["CustodyEngine"]
