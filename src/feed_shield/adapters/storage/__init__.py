"""Durable key-value store adapters."""

from feed_shield.adapters.storage.memory_store import MemoryStore
from feed_shield.adapters.storage.yaml_store import YamlFileStore

__all__ = ["MemoryStore", "YamlFileStore"]
