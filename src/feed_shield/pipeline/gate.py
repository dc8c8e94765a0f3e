"""Pause switch shared by the observer and the code that moves units."""

from contextlib import contextmanager
from typing import Iterator


class ObservationGate:
    """Reference-counted pause switch for structural-change observation.

    Our own moves must not be mistaken for new content, so anything that
    mutates the stream holds the gate for the duration.
    """

    def __init__(self) -> None:
        self.depth = 0

    @property
    def paused(self) -> bool:
        return self.depth > 0

    def pause(self) -> None:
        self.depth += 1

    def resume(self) -> None:
        if self.depth > 0:
            self.depth -= 1

    @contextmanager
    def suspended(self) -> Iterator[None]:
        self.pause()
        try:
            yield
        finally:
            self.resume()
