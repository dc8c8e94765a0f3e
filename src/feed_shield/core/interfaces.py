"""Core interfaces for adapters and external collaborators."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from feed_shield.core.entities import ContentParts, Verdict, View


class KeyValueStore(ABC):
    """Durable key-value storage (single-key atomicity only)."""

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store value under key."""
        pass


class OracleTransport(ABC):
    """Wire transport to the classification oracle."""

    name: str = "oracle"

    @abstractmethod
    async def send(self, entries: list[dict[str, str]]) -> list[Any]:
        """Send ``[{id, text}]`` entries and return the raw verdict list.

        Raises:
            TransportError: On network failure
            ProtocolError: On a non-success status
            DecodeError: On a malformed body
        """
        pass


class PresentationHost(ABC):
    """Rendering host that owns the mutating item stream.

    Handles passed around are opaque to the core and may become stale at
    any time; ``is_connected`` tells whether one is still live.
    """

    # --- Observation ---

    @abstractmethod
    def subscribe(self, callback: Callable[[list[Any]], None]) -> None:
        """Register callback for structural add events (added nodes)."""
        pass

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering structural add events."""
        pass

    @abstractmethod
    def find_units(self, root: Any = None) -> list[Any]:
        """Return content units inside root (whole tree when None)."""
        pass

    @abstractmethod
    def is_connected(self, handle: Any) -> bool:
        """Whether the handle still refers to a live unit."""
        pass

    # --- Content ---

    @abstractmethod
    def extract(self, handle: Any) -> ContentParts:
        """Extract text, author, quoted content, link preview and url."""
        pass

    @abstractmethod
    def author_of(self, handle: Any) -> Optional[str]:
        """Lower-cased author handle of a unit, if known."""
        pass

    # --- Presentation markers ---

    @abstractmethod
    def get_state(self, handle: Any) -> Optional[Verdict]:
        """Presentation state currently marked on a unit."""
        pass

    @abstractmethod
    def set_state(self, handle: Any, state: Verdict) -> None:
        """Replace the presentation marker on a unit."""
        pass

    @abstractmethod
    def clear_state(self, handle: Any) -> None:
        """Remove presentation markers and rewrite labels from a unit."""
        pass

    @abstractmethod
    def replace_text(self, handle: Any, text: str) -> None:
        """Replace the displayed body text of a unit."""
        pass

    @abstractmethod
    def has_rewrite_label(self, handle: Any) -> bool:
        pass

    @abstractmethod
    def add_rewrite_label(self, handle: Any) -> None:
        pass

    # --- View and layout ---

    @abstractmethod
    def current_view(self) -> View:
        """Describe the page currently shown."""
        pass

    @abstractmethod
    def is_visible(self) -> bool:
        """Whether the surface is in the foreground."""
        pass

    @abstractmethod
    def container_of(self, handle: Any) -> Optional[Any]:
        """Reorderable container wrapping a unit, if any."""
        pass

    @abstractmethod
    def parent_of(self, node: Any) -> Optional[Any]:
        pass

    @abstractmethod
    def children_of(self, parent: Any) -> list[Any]:
        pass

    @abstractmethod
    def next_sibling(self, node: Any) -> Optional[Any]:
        pass

    @abstractmethod
    def insert_before(self, parent: Any, node: Any, reference: Optional[Any]) -> None:
        """Move node under parent, before reference (append when None)."""
        pass

    @abstractmethod
    def viewport_offset(self, node: Any) -> Optional[float]:
        """Top offset of node within the viewport, None when off-screen."""
        pass

    @abstractmethod
    def scroll_by(self, dy: float) -> None:
        pass

    # --- Surface control ---

    @abstractmethod
    def show_unavailable_overlay(self, mode: str) -> None:
        pass

    @abstractmethod
    def remove_unavailable_overlay(self) -> None:
        pass

    @abstractmethod
    def redirect_to_blocked(self) -> None:
        """Navigate away to the lockout page."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Terminate the surface."""
        pass


class Surface(ABC):
    """Active consumer of the stream that receives broadcasts."""

    surface_id: str

    @abstractmethod
    async def notify(self, message: dict[str, Any]) -> None:
        """Deliver a broadcast message (LOCKOUT, MODE_CHANGED)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Force-terminate the surface."""
        pass


class MessageChannel(ABC):
    """Request/response channel from a surface to the background service."""

    @abstractmethod
    async def send(self, message_type: str, **payload: Any) -> Optional[dict[str, Any]]:
        """Send a message; None means the channel failed (fail closed)."""
        pass
