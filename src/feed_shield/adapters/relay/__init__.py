"""Local classification relay."""

from feed_shield.adapters.relay.pool import ClassifierPool
from feed_shield.adapters.relay.server import create_app

__all__ = ["ClassifierPool", "create_app"]
