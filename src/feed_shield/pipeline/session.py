"""One presentation surface wired to the background service."""

import asyncio
import logging
import uuid
from typing import Any, Optional

from feed_shield.core.interfaces import MessageChannel, PresentationHost, Surface
from feed_shield.core.verdict_cache import VerdictCache
from feed_shield.pipeline.batch_scheduler import BatchScheduler
from feed_shield.pipeline.detector import Detector
from feed_shield.pipeline.gate import ObservationGate
from feed_shield.pipeline.reorderer import Reorderer
from feed_shield.pipeline.state_machine import VerdictStateMachine
from feed_shield.utils import log_event

logger = logging.getLogger(__name__)


class ShieldSession(Surface):
    """Drive detection, batching and presentation for one host surface.

    Content stays hidden whenever the classifier is unreachable: the
    session shows an overlay, marks every unit pending and polls until
    the classifier answers. The heartbeat keeps running in that state so
    the quota still applies.
    """

    def __init__(
        self,
        host: PresentationHost,
        channel: MessageChannel,
        cache: VerdictCache,
        surface_id: Optional[str] = None,
        batch_size: int = 5,
        batch_timeout: float = 3.0,
        heartbeat_interval: float = 10.0,
        retry_interval: float = 5.0,
        thread_override_enabled: bool = True,
    ) -> None:
        self.surface_id = surface_id or uuid.uuid4().hex
        self.host = host
        self.channel = channel
        self.heartbeat_interval = heartbeat_interval
        self.retry_interval = retry_interval

        self.gate = ObservationGate()
        self.state_machine = VerdictStateMachine(host, thread_override_enabled)
        self.reorderer = Reorderer(host, self.gate)
        self.scheduler = BatchScheduler(
            host,
            channel,
            self.state_machine,
            reorderer=self.reorderer,
            batch_size=batch_size,
            batch_timeout=batch_timeout,
        )
        self.detector = Detector(host, cache, self.scheduler, self.state_machine, self.gate)

        self.locked = False
        self.classifier_available = False
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._closed = False

    async def start(self) -> bool:
        """Bring the surface up.

        Returns:
            False if the user is locked out
        """
        lockout = await self.channel.send("CHECK_LOCKOUT")
        if lockout and lockout.get("locked") is True:
            self._lock()
            return False

        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        if await self._check_classifier():
            self._activate()
        else:
            self._retry_task = asyncio.create_task(self._retry_loop())
        return True

    async def heartbeat(self) -> Optional[dict[str, Any]]:
        """Report one tick of foreground time."""
        if not self.host.is_visible():
            return None

        response = await self.channel.send("HEARTBEAT")
        if response and response.get("locked") is True:
            self._lock()
        return response

    def on_navigate(self) -> None:
        """The host switched views; recycled units must be reprocessed."""
        dropped = self.scheduler.discard()
        stripped = self.detector.strip_markers()
        log_event(logger, logging.DEBUG, "navigate", dropped=dropped, stripped=stripped)
        if self.classifier_available:
            self.detector.scan()
        else:
            self.detector.hide_unmarked()

    async def notify(self, message: dict[str, Any]) -> None:
        message_type = message.get("type")
        if message_type == "LOCKOUT":
            self._lock()
        elif message_type == "MODE_CHANGED":
            self.host.remove_unavailable_overlay()
            if await self._check_classifier():
                if not self.classifier_available:
                    self._activate()
            else:
                self.classifier_available = False
                self._start_retry()
        else:
            logger.debug("Ignoring broadcast %s", message_type)

    async def close(self) -> None:
        """Stop loops and terminate the surface."""
        await self.stop()
        self.host.close()

    async def stop(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.detector.detach()
        self.scheduler.discard()
        for task in (self._heartbeat_task, self._retry_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        await self.scheduler.drain()

    async def _check_classifier(self) -> bool:
        response = await self.channel.send("CHECK_CLASSIFIER")
        if response and response.get("available") is True:
            return True

        mode = (response or {}).get("mode") or "local"
        self.host.show_unavailable_overlay(mode)
        # Units arriving under the overlay stay hidden until the classifier is back
        self.detector.holding = True
        self.detector.attach()
        self.detector.hide_unmarked()
        return False

    def _activate(self) -> None:
        self.classifier_available = True
        self.host.remove_unavailable_overlay()
        self.detector.holding = False
        self.detector.attach()
        self.detector.reprocess_hidden()
        self.detector.scan()
        log_event(logger, logging.INFO, "session_active", surface=self.surface_id)

    def _start_retry(self) -> None:
        if self._retry_task is None or self._retry_task.done():
            self._retry_task = asyncio.create_task(self._retry_loop())

    async def _retry_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.retry_interval)
            response = await self.channel.send("CHECK_CLASSIFIER")
            if response and response.get("available") is True:
                self._activate()
                return

    async def _heartbeat_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.heartbeat_interval)
            await self.heartbeat()

    def _lock(self) -> None:
        if self.locked:
            return
        self.locked = True
        self.host.redirect_to_blocked()
