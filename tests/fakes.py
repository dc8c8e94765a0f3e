"""In-memory collaborators shared by the tests."""

from typing import Any, Callable, Optional

from feed_shield.core.entities import ContentParts, Verdict, View, ViewKind
from feed_shield.core.errors import TransportError
from feed_shield.core.interfaces import MessageChannel, OracleTransport, PresentationHost, Surface


class FakeNode:
    """Tiny document node: a feed holds cells, a cell holds one unit."""

    def __init__(self, kind: str, text: str = "", author: Optional[str] = None) -> None:
        self.kind = kind
        self.text = text
        self.author = author
        self.quote = ""
        self.parent: Optional["FakeNode"] = None
        self.children: list["FakeNode"] = []
        self.state: Optional[Verdict] = None
        self.rewrite_labels = 0
        self.connected = True

    def append(self, child: "FakeNode") -> "FakeNode":
        child.parent = self
        self.children.append(child)
        return child

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    def __repr__(self) -> str:
        return f"FakeNode({self.kind}, {self.text!r})"


class FakeHost(PresentationHost):
    """Presentation host backed by a FakeNode tree.

    Rows are ``row_height`` tall; a cell is on screen when its offset lies
    within ``[0, viewport_height)``.
    """

    def __init__(self, view: Optional[View] = None, row_height: float = 100, viewport_height: float = 300) -> None:
        self.root = FakeNode("feed")
        self.view = view or View(ViewKind.FEED)
        self.visible = True
        self.row_height = row_height
        self.viewport_height = viewport_height
        self.scroll_y = 0.0
        self.scrolls: list[float] = []
        self.mutations = 0
        self.callback: Optional[Callable[[list[Any]], None]] = None
        self.overlay: Optional[str] = None
        self.redirected = 0
        self.closed = False

    # --- Test helpers ---

    def add_post(self, text: str, author: Optional[str] = None, notify: bool = True) -> FakeNode:
        cell = FakeNode("cell")
        unit = cell.append(FakeNode("unit", text, author))
        self.root.append(cell)
        if notify and self.callback is not None:
            self.callback([cell])
        return unit

    def units(self) -> list[FakeNode]:
        return [cell.children[0] for cell in self.root.children]

    def remove(self, unit: FakeNode) -> None:
        cell = unit.parent
        self.root.children.remove(cell)
        cell.parent = None
        unit.connected = False

    # --- Observation ---

    def subscribe(self, callback: Callable[[list[Any]], None]) -> None:
        self.callback = callback

    def unsubscribe(self) -> None:
        self.callback = None

    def find_units(self, root: Any = None) -> list[Any]:
        start = root if root is not None else self.root
        return [node for node in start.walk() if node.kind == "unit"]

    def is_connected(self, handle: Any) -> bool:
        return handle.connected

    # --- Content ---

    def extract(self, handle: Any) -> ContentParts:
        return ContentParts(text=handle.text, author=handle.author or "", quote_text=handle.quote)

    def author_of(self, handle: Any) -> Optional[str]:
        return handle.author.lower() if handle.author else None

    # --- Presentation markers ---

    def get_state(self, handle: Any) -> Optional[Verdict]:
        return handle.state

    def set_state(self, handle: Any, state: Verdict) -> None:
        handle.state = state

    def clear_state(self, handle: Any) -> None:
        handle.state = None
        handle.rewrite_labels = 0

    def replace_text(self, handle: Any, text: str) -> None:
        handle.text = text

    def has_rewrite_label(self, handle: Any) -> bool:
        return handle.rewrite_labels > 0

    def add_rewrite_label(self, handle: Any) -> None:
        handle.rewrite_labels += 1

    # --- View and layout ---

    def current_view(self) -> View:
        return self.view

    def is_visible(self) -> bool:
        return self.visible

    def container_of(self, handle: Any) -> Optional[Any]:
        parent = handle.parent
        return parent if parent is not None and parent.kind == "cell" else None

    def parent_of(self, node: Any) -> Optional[Any]:
        return node.parent

    def children_of(self, parent: Any) -> list[Any]:
        return list(parent.children)

    def next_sibling(self, node: Any) -> Optional[Any]:
        siblings = node.parent.children
        index = siblings.index(node)
        return siblings[index + 1] if index + 1 < len(siblings) else None

    def insert_before(self, parent: Any, node: Any, reference: Optional[Any]) -> None:
        self.mutations += 1
        if node is reference:
            return
        if node.parent is not None:
            node.parent.children.remove(node)
        node.parent = parent
        if reference is None:
            parent.children.append(node)
        else:
            parent.children.insert(parent.children.index(reference), node)

    def viewport_offset(self, node: Any) -> Optional[float]:
        if node.parent is not self.root:
            return None
        top = self.root.children.index(node) * self.row_height - self.scroll_y
        return top if 0 <= top < self.viewport_height else None

    def scroll_by(self, dy: float) -> None:
        self.scroll_y += dy
        self.scrolls.append(dy)

    # --- Surface control ---

    def show_unavailable_overlay(self, mode: str) -> None:
        self.overlay = mode

    def remove_unavailable_overlay(self) -> None:
        self.overlay = None

    def redirect_to_blocked(self) -> None:
        self.redirected += 1

    def close(self) -> None:
        self.closed = True


class FakeChannel(MessageChannel):
    """Channel that answers from a handler function and records sends."""

    def __init__(self, handler: Optional[Callable[..., Optional[dict]]] = None) -> None:
        self.handler = handler or (lambda message_type, **payload: None)
        self.sent: list[tuple[str, dict]] = []

    async def send(self, message_type: str, **payload: Any) -> Optional[dict[str, Any]]:
        self.sent.append((message_type, payload))
        return self.handler(message_type, **payload)

    def sent_types(self) -> list[str]:
        return [message_type for message_type, _ in self.sent]


def verdicts_by_text(mapping: dict[str, str], reorder: bool = True) -> Callable[..., Optional[dict]]:
    """Channel handler answering CLASSIFY_BATCH with a verdict per known text."""

    def handler(message_type: str, **payload: Any) -> Optional[dict]:
        if message_type != "CLASSIFY_BATCH":
            return None
        verdicts = [
            {"id": item["id"], "verdict": mapping[item["text"].split("\n")[0]], "reason": "test"}
            for item in payload["items"]
            if item["text"].split("\n")[0] in mapping
        ]
        return {"verdicts": verdicts, "feed_reordering_enabled": reorder}

    return handler


class FakeTransport(OracleTransport):
    """Oracle transport replaying scripted responses or errors."""

    name = "fake"

    def __init__(self, responses: Optional[list[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[list[dict[str, str]]] = []
        self.healthy = True

    async def send(self, entries: list[dict[str, str]]) -> list[Any]:
        self.calls.append(entries)
        if not self.responses:
            raise TransportError("no scripted response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(entries)
        return response

    async def check_health(self) -> bool:
        return self.healthy


class RecordingSurface(Surface):
    """Surface that records broadcasts."""

    def __init__(self, surface_id: str, fail: bool = False) -> None:
        self.surface_id = surface_id
        self.fail = fail
        self.messages: list[dict] = []
        self.closed = False

    async def notify(self, message: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("surface gone")
        self.messages.append(message)

    async def close(self) -> None:
        self.closed = True


class MappingTransport(FakeTransport):
    """Oracle answering by the first line of each text (``filter`` when unknown)."""

    def __init__(self, mapping: dict[str, str]) -> None:
        super().__init__()
        self.mapping = mapping

    async def send(self, entries: list[dict[str, str]]) -> list[Any]:
        self.calls.append(entries)
        return [
            {"id": e["id"], "verdict": self.mapping.get(e["text"].split("\n")[0], "filter"), "reason": "mapped"}
            for e in entries
        ]
