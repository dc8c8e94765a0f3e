"""Background service: owns shared state and answers surface messages."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from feed_shield.adapters.oracle import AnthropicTransport, OracleClient, RelayTransport
from feed_shield.config import Settings
from feed_shield.core.classification_log import ClassificationLog
from feed_shield.core.entities import ClassificationMode, ClassifiedItem, Item, LogEntry, Verdict
from feed_shield.core.errors import ChannelError, UnauthenticatedSenderError, UnknownMessageError
from feed_shield.core.hasher import content_hash
from feed_shield.core.interfaces import (
    KeyValueStore,
    MessageChannel,
    OracleTransport,
    PresentationHost,
    Surface,
)
from feed_shield.core.quota import QuotaTracker
from feed_shield.core.stats import DailyStatsTracker
from feed_shield.core.verdict_cache import VerdictCache
from feed_shield.pipeline.session import ShieldSession
from feed_shield.utils import log_event

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
API_KEY_KEY = "api_key"
DEFAULT_SERVICE_ID = "feed-shield"


class MessageType(str, Enum):
    """Request kinds a surface may send to the service."""

    CHECK_LOCKOUT = "CHECK_LOCKOUT"
    CHECK_CLASSIFIER = "CHECK_CLASSIFIER"
    HEARTBEAT = "HEARTBEAT"
    CLASSIFY_BATCH = "CLASSIFY_BATCH"
    GET_STATS = "GET_STATS"
    RESET_STATS = "RESET_STATS"
    SET_API_KEY = "SET_API_KEY"
    SET_MODE = "SET_MODE"
    SET_FEED_REORDERING = "SET_FEED_REORDERING"
    SET_TIME_LIMIT = "SET_TIME_LIMIT"
    SET_LOGGING = "SET_LOGGING"
    GET_LOG_HISTORY = "GET_LOG_HISTORY"
    CLEAR_LOG = "CLEAR_LOG"


@dataclass(frozen=True)
class Sender:
    id: str


@dataclass
class Message:
    type: MessageType
    payload: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Message], Awaitable[Optional[dict[str, Any]]]]


class MessageRouter:
    """One handler per message type; everything else fails fast."""

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        self._handlers: dict[MessageType, Handler] = {}

    def register(self, message_type: MessageType, handler: Handler) -> None:
        self._handlers[message_type] = handler

    async def dispatch(
        self, message_type: Any, payload: dict[str, Any], sender: Sender
    ) -> Optional[dict[str, Any]]:
        """Route a message to its handler.

        Raises:
            UnauthenticatedSenderError: Sender is not this service
            UnknownMessageError: No handler for the type
        """
        if sender.id != self.service_id:
            raise UnauthenticatedSenderError(sender.id)

        try:
            kind = MessageType(message_type)
        except ValueError:
            raise UnknownMessageError(message_type) from None

        handler = self._handlers.get(kind)
        if handler is None:
            raise UnknownMessageError(kind.value)
        return await handler(Message(kind, payload))


class LocalChannel(MessageChannel):
    """In-process channel from a session to the router.

    Any failure comes back as None so the caller fails closed.
    """

    def __init__(self, router: MessageRouter, sender: Sender) -> None:
        self.router = router
        self.sender = sender

    async def send(self, message_type: str, **payload: Any) -> Optional[dict[str, Any]]:
        try:
            return await self.router.dispatch(message_type, payload, self.sender)
        except ChannelError as e:
            logger.warning("Message rejected: %s", e)
            return None
        except Exception:
            logger.exception("Handler for %s failed", message_type)
            return None


def seconds_until_midnight(now: datetime) -> float:
    """Seconds from now to the next local midnight."""
    tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return (tomorrow - now).total_seconds()


class ShieldService:
    """Long-lived owner of cache, quota, stats and log.

    Constructed once per process and driven by ``start`` / ``stop``.
    Surfaces talk to it only through messages.
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        service_id: str = DEFAULT_SERVICE_ID,
        relay: Optional[RelayTransport] = None,
        api_transport_factory: Optional[Callable[[str], OracleTransport]] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.store = store
        self.service_id = service_id

        self.cache = VerdictCache(
            store,
            max_entries=settings.cache.max_entries,
            ttl_seconds=settings.cache.ttl_seconds,
        )
        self.quota = QuotaTracker(
            store,
            limit_seconds=settings.quota.time_limit_seconds,
            tick_seconds=settings.quota.heartbeat_interval,
            on_lockout=self.enforce_lockout,
            today=today,
        )
        self.stats = DailyStatsTracker(store, today=today)
        self.log = ClassificationLog(
            store,
            enabled=settings.log.enabled,
            max_entries=settings.log.max_entries,
            max_persisted=settings.log.max_persisted,
        )
        self.relay = relay or RelayTransport(settings.classifier.relay_url, settings.classifier.timeout)
        self.api_transport_factory = api_transport_factory or self._build_api_transport

        self.router = MessageRouter(service_id)
        self._register_handlers()

        self._surfaces: dict[str, Surface] = {}
        self._tasks: set[asyncio.Task] = set()
        self._started = False

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._started:
            return
        self._started = True

        await self.cache.load()
        await self.log.load()

        runtime = await self.runtime_settings()
        self.quota.limit_seconds = int(runtime["time_limit_seconds"])
        self.log.enabled = bool(runtime["logging_enabled"])

        swept = await self.cache.sweep_expired()
        log_event(logger, logging.INFO, "service_started", cached=len(self.cache), swept=swept)

        self._spawn(self.cache.run_flush_loop(self.settings.cache.flush_interval))
        self._spawn(self.log.run_flush_loop(self.settings.log.flush_interval))
        self._spawn(self._run_daily_reset_loop())

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False

        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        await self.cache.flush()
        await self.log.flush()
        log_event(logger, logging.INFO, "service_stopped")

    async def daily_reset(self) -> None:
        """Midnight rollover: fresh quota, clean cache, zeroed counters."""
        await self.quota.reset_day()
        await self.cache.sweep_expired()
        await self.stats.reset()
        self.log.reset_stats()
        log_event(logger, logging.INFO, "daily_reset")

    async def _run_daily_reset_loop(self) -> None:
        while True:
            await asyncio.sleep(seconds_until_midnight(datetime.now()))
            await self.daily_reset()

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- Surfaces ---

    def channel(self) -> LocalChannel:
        """Channel that speaks to this service as a trusted sender."""
        return LocalChannel(self.router, Sender(self.service_id))

    def create_session(self, host: PresentationHost, surface_id: Optional[str] = None) -> ShieldSession:
        """Build a session for host wired to this service, and register it."""
        session = ShieldSession(
            host,
            self.channel(),
            self.cache,
            surface_id=surface_id,
            batch_size=self.settings.batching.batch_size,
            batch_timeout=self.settings.batching.batch_timeout,
            heartbeat_interval=self.settings.quota.heartbeat_interval,
            retry_interval=self.settings.presentation.classifier_retry_interval,
            thread_override_enabled=self.settings.presentation.thread_override_enabled,
        )
        self.register_surface(session)
        return session

    def register_surface(self, surface: Surface) -> None:
        self._surfaces[surface.surface_id] = surface

    def unregister_surface(self, surface_id: str) -> None:
        self._surfaces.pop(surface_id, None)

    @property
    def surfaces(self) -> list[Surface]:
        return list(self._surfaces.values())

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Notify every surface; returns how many accepted the message."""
        delivered = 0
        for surface in self.surfaces:
            try:
                await surface.notify(message)
                delivered += 1
            except Exception as e:
                # A surface that cannot take the message must not block the others
                logger.warning("Could not notify surface %s: %s", surface.surface_id, e)
        return delivered

    async def enforce_lockout(self) -> None:
        """Tell every surface about the lockout, then close them after a grace delay."""
        log_event(logger, logging.WARNING, "lockout", surfaces=len(self._surfaces))
        await self.broadcast({"type": "LOCKOUT"})
        self._spawn(self._close_surfaces_later(self.settings.quota.lockout_close_delay))

    async def _close_surfaces_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        for surface in self.surfaces:
            try:
                await surface.close()
            except Exception as e:
                logger.warning("Could not close surface %s: %s", surface.surface_id, e)
            self.unregister_surface(surface.surface_id)

    # --- Settings ---

    async def runtime_settings(self) -> dict[str, Any]:
        """User-adjustable settings: stored overrides on top of config defaults."""
        merged = self.settings.runtime_defaults()
        stored = await self.store.get(SETTINGS_KEY)
        if isinstance(stored, dict):
            merged.update({k: v for k, v in stored.items() if k in merged})
        return merged

    async def update_settings(self, **changes: Any) -> dict[str, Any]:
        stored = await self.store.get(SETTINGS_KEY)
        stored = stored if isinstance(stored, dict) else {}
        stored.update(changes)
        await self.store.set(SETTINGS_KEY, stored)
        return await self.runtime_settings()

    async def api_key(self) -> str:
        stored = await self.store.get(API_KEY_KEY)
        if isinstance(stored, str) and stored.strip():
            return stored.strip()
        return self.settings.anthropic_api_key.strip()

    async def classification_mode(self) -> ClassificationMode:
        runtime = await self.runtime_settings()
        try:
            return ClassificationMode(runtime["classification_mode"])
        except ValueError:
            return ClassificationMode.LOCAL

    # --- Classification ---

    async def classify_batch(self, entries: list[Any]) -> dict[str, Any]:
        """Answer a batch from the cache, sending only misses to the oracle."""
        runtime = await self.runtime_settings()
        reorder = runtime["feed_reordering_enabled"] is not False

        results: list[ClassifiedItem] = []
        misses: list[Item] = []
        seen: dict[str, tuple[str, str]] = {}

        for entry in entries or []:
            if not isinstance(entry, dict) or entry.get("id") is None:
                continue
            text = str(entry.get("text") or "")
            url = str(entry.get("url") or "")
            seen[str(entry["id"])] = (text, url)
            fingerprint = content_hash(text)
            cached = self.cache.get(fingerprint)
            if cached is not None:
                results.append(ClassifiedItem(str(entry["id"]), fingerprint, cached, from_cache=True))
            else:
                misses.append(Item(text, fingerprint, url=url, tracking_id=str(entry["id"])))

        if misses:
            client = await self._oracle_client()
            records = await client.classify(misses)
            results.extend(
                ClassifiedItem(item.tracking_id, item.fingerprint, record)
                for item, record in zip(misses, records)
            )

        if results:
            await self.stats.record(r.record.verdict for r in results)

        for result in results:
            text, url = seen[result.id]
            self.log.record(
                LogEntry(
                    timestamp=result.record.timestamp,
                    fingerprint=result.fingerprint,
                    text=text,
                    verdict=result.record.verdict,
                    reason=result.record.reason,
                    url=url,
                    rewritten_text=result.record.rewritten_text,
                    from_cache=result.from_cache,
                )
            )

        log_event(
            logger,
            logging.DEBUG,
            "batch_answered",
            size=len(results),
            cached=len(results) - len(misses),
        )
        return {
            "verdicts": [r.to_message() for r in results],
            "feed_reordering_enabled": reorder,
        }

    async def _oracle_client(self) -> OracleClient:
        mode = await self.classification_mode()
        key = await self.api_key()

        # API mode without a key falls back to the relay
        if mode is ClassificationMode.API and key:
            transport = self.api_transport_factory(key)
        else:
            transport = self.relay

        return OracleClient(
            transport,
            self.cache,
            max_attempts=self.settings.classifier.max_attempts,
            retry_delay=self.settings.classifier.retry_delay,
            timeout=self.settings.classifier.timeout,
        )

    def _build_api_transport(self, api_key: str) -> OracleTransport:
        cfg = self.settings.classifier
        return AnthropicTransport(
            api_key,
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            base_url=cfg.api_base_url,
            timeout=cfg.timeout,
        )

    # --- Message handlers ---

    def _register_handlers(self) -> None:
        handlers = {
            MessageType.CHECK_LOCKOUT: self._on_check_lockout,
            MessageType.CHECK_CLASSIFIER: self._on_check_classifier,
            MessageType.HEARTBEAT: self._on_heartbeat,
            MessageType.CLASSIFY_BATCH: self._on_classify_batch,
            MessageType.GET_STATS: self._on_get_stats,
            MessageType.RESET_STATS: self._on_reset_stats,
            MessageType.SET_API_KEY: self._on_set_api_key,
            MessageType.SET_MODE: self._on_set_mode,
            MessageType.SET_FEED_REORDERING: self._on_set_feed_reordering,
            MessageType.SET_TIME_LIMIT: self._on_set_time_limit,
            MessageType.SET_LOGGING: self._on_set_logging,
            MessageType.GET_LOG_HISTORY: self._on_get_log_history,
            MessageType.CLEAR_LOG: self._on_clear_log,
        }
        for message_type, handler in handlers.items():
            self.router.register(message_type, handler)

    async def _on_check_lockout(self, message: Message) -> dict[str, Any]:
        return {"locked": await self.quota.is_locked()}

    async def _on_check_classifier(self, message: Message) -> dict[str, Any]:
        mode = await self.classification_mode()
        if mode is ClassificationMode.API:
            available = bool(await self.api_key())
        else:
            available = await self.relay.check_health()
        return {"available": available, "mode": mode.value}

    async def _on_heartbeat(self, message: Message) -> dict[str, Any]:
        tick = await self.quota.on_tick()
        return {"time_remaining": tick.remaining, "locked": tick.locked}

    async def _on_classify_batch(self, message: Message) -> dict[str, Any]:
        return await self.classify_batch(message.payload.get("items") or [])

    async def _on_get_stats(self, message: Message) -> dict[str, Any]:
        stats = await self.stats.get()
        quota = await self.quota.get_state()
        runtime = await self.runtime_settings()
        return {
            **stats.to_dict(),
            "time_used": quota.used_seconds,
            "time_limit": quota.limit_seconds,
            "locked": quota.locked,
            "feed_reordering_enabled": runtime["feed_reordering_enabled"],
            "classification_mode": runtime["classification_mode"],
            "logging_enabled": runtime["logging_enabled"],
        }

    async def _on_reset_stats(self, message: Message) -> dict[str, Any]:
        await self.stats.reset()
        self.log.reset_stats()
        return {"success": True}

    async def _on_set_api_key(self, message: Message) -> dict[str, Any]:
        key = str(message.payload.get("key") or "").strip()
        await self.store.set(API_KEY_KEY, key)
        return {"success": True}

    async def _on_set_mode(self, message: Message) -> dict[str, Any]:
        mode = ClassificationMode.API if message.payload.get("mode") == "api" else ClassificationMode.LOCAL
        await self.update_settings(classification_mode=mode.value)
        await self.broadcast({"type": "MODE_CHANGED", "mode": mode.value})
        return {"success": True, "mode": mode.value}

    async def _on_set_feed_reordering(self, message: Message) -> dict[str, Any]:
        enabled = bool(message.payload.get("enabled", True))
        await self.update_settings(feed_reordering_enabled=enabled)
        return {"success": True, "feed_reordering_enabled": enabled}

    async def _on_set_time_limit(self, message: Message) -> Optional[dict[str, Any]]:
        try:
            seconds = int(message.payload.get("seconds"))
        except (TypeError, ValueError):
            return None
        if seconds <= 0:
            return None
        await self.update_settings(time_limit_seconds=seconds)
        await self.quota.set_limit(seconds)
        return {"success": True, "time_limit_seconds": seconds}

    async def _on_set_logging(self, message: Message) -> dict[str, Any]:
        enabled = bool(message.payload.get("enabled", False))
        await self.update_settings(logging_enabled=enabled)
        self.log.enabled = enabled
        return {"success": True, "logging_enabled": enabled}

    async def _on_get_log_history(self, message: Message) -> dict[str, Any]:
        limit = message.payload.get("limit", 50)
        verdict = message.payload.get("verdict")
        entries = self.log.history(
            limit=int(limit),
            verdict=Verdict.parse(verdict) if verdict else None,
        )
        return {"entries": [e.to_dict() for e in entries], "stats": self.log.stats()}

    async def _on_clear_log(self, message: Message) -> dict[str, Any]:
        await self.log.clear()
        return {"success": True}
