"""Datastore layer: async engine, sessions and schema creation."""

from token_custody.datastore.client import Datastore

__all__ = ["Datastore"]
