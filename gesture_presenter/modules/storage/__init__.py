"""Persisted key-value settings."""
from .kv_store import KeyValueStore, JsonFileStore, MemoryStore

__all__ = ["KeyValueStore", "JsonFileStore", "MemoryStore"]
