"""HTTP relay exposing the classifier pool on a loopback port."""

import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from feed_shield.adapters.oracle.prompt import build_user_prompt
from feed_shield.adapters.relay.pool import ClassifierPool
from feed_shield.core.errors import ClassifierError
from feed_shield.utils import log_event

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024

_POSITIONAL_ID = re.compile(r"item_(\d+)")


def create_app(pool: ClassifierPool, max_body_bytes: int = MAX_BODY_BYTES) -> FastAPI:
    """Build the relay application around a classifier pool."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await pool.start()
        try:
            yield
        finally:
            await pool.stop()

    app = FastAPI(title="feed-shield relay", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/health")
    async def health() -> JSONResponse:
        if not pool.is_warm:
            return JSONResponse({"status": "warming", "warm": pool.warm_count}, status_code=503)
        return JSONResponse({"status": "ok", "warm": pool.warm_count})

    @app.post("/classify")
    async def classify(request: Request) -> JSONResponse:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_body_bytes:
            return _error(413, "Request body too large")

        body = await request.body()
        if len(body) > max_body_bytes:
            return _error(413, "Request body too large")

        try:
            items = json.loads(body)
        except ValueError:
            return _error(400, "Invalid JSON body")

        if not isinstance(items, list) or not items:
            return _error(400, "Expected non-empty array of items")

        texts = [str(item.get("text") or "") if isinstance(item, dict) else "" for item in items]
        log_event(logger, logging.INFO, "relay_classify", size=len(items))

        try:
            raw_verdicts = await pool.classify(build_user_prompt(texts))
        except ClassifierError as e:
            log_event(logger, logging.ERROR, "relay_classify_failed", error=e)
            return _error(500, str(e))

        return JSONResponse({"verdicts": map_to_request_ids(raw_verdicts, items)})

    return app


def map_to_request_ids(raw_verdicts: list[Any], items: list[Any]) -> list[dict[str, Any]]:
    """Translate positional ids in the classifier reply back to request ids.

    Entries whose id does not name a position in the request are dropped.
    """
    mapped = []
    for entry in raw_verdicts:
        if not isinstance(entry, dict):
            continue
        index = _position_of(entry.get("id"), len(items))
        if index is None:
            continue

        request_item = items[index]
        request_id = request_item.get("id") if isinstance(request_item, dict) else None

        verdict: dict[str, Any] = {
            "id": request_id if request_id is not None else entry["id"],
            "verdict": entry.get("verdict"),
            "reason": entry.get("reason", ""),
        }
        if entry.get("distilled"):
            verdict["distilled"] = entry["distilled"]
        mapped.append(verdict)
    return mapped


def _position_of(raw_id: Any, count: int) -> Optional[int]:
    if not isinstance(raw_id, str):
        return None
    match = _POSITIONAL_ID.fullmatch(raw_id)
    if not match:
        return None
    index = int(match.group(1))
    return index if index < count else None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)
