"""CLI entry point for feed-shield."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from feed_shield.adapters.relay import ClassifierPool, create_app
from feed_shield.adapters.storage import YamlFileStore
from feed_shield.config import Settings, get_settings
from feed_shield.service import ShieldService
from feed_shield.utils import configure_logging

app = typer.Typer(help="Fail-closed content shield for live feeds.", no_args_is_help=True)

CONFIG_OPTION = typer.Option(Path("config.yaml"), "--config", "-c", help="Path to config.yaml")

VERDICT_EMOJI = {
    "nourish": "🌱",
    "show": "✓",
    "distill": "🧪",
    "filter": "🚫",
}


def _build_service(settings: Settings) -> ShieldService:
    return ShieldService(settings, YamlFileStore(settings.state_file))


@app.command()
def relay(
    config: Path = CONFIG_OPTION,
    host: Optional[str] = typer.Option(None, help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, help="Port (default from config)"),
) -> None:
    """Run the local classification relay."""
    configure_logging()
    settings = get_settings(config)
    cfg = settings.relay

    pool = ClassifierPool(
        command=cfg.command,
        model=cfg.model,
        size=cfg.pool_size,
        timeout=cfg.timeout,
    )

    print("\n" + "=" * 70)
    print("🛡️  FEED SHIELD RELAY")
    print("=" * 70)
    print(f"  • Listening: http://{host or cfg.host}:{port or cfg.port}")
    print(f"  • Classifier: {cfg.command} ({cfg.model}), pool of {cfg.pool_size}")
    print(f"  • Max body: {cfg.max_body_bytes} bytes")

    uvicorn.run(
        create_app(pool, max_body_bytes=cfg.max_body_bytes),
        host=host or cfg.host,
        port=port or cfg.port,
        log_level="info",
    )


@app.command()
def classify(
    texts: list[str] = typer.Argument(..., help="Texts to classify"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Classify texts through the configured oracle, using the shared cache."""
    configure_logging()
    asyncio.run(_classify(get_settings(config), texts))


async def _classify(settings: Settings, texts: list[str]) -> None:
    service = _build_service(settings)
    await service.start()
    try:
        mode = await service.classification_mode()
        print(f"\n🔍 Classifying {len(texts)} item(s) via {mode.value} mode...")

        response = await service.classify_batch(
            [{"id": str(i), "text": text} for i, text in enumerate(texts)]
        )
    finally:
        await service.stop()

    for verdict in response["verdicts"]:
        text = texts[int(verdict["id"])]
        emoji = VERDICT_EMOJI.get(verdict["verdict"], "•")
        preview = text if len(text) <= 60 else text[:57] + "..."
        print(f"\n{emoji} {verdict['verdict'].upper()}: {preview}")
        print(f"  └─ {verdict['reason']}")
        if verdict.get("distilled"):
            print(f"  └─ Distilled: {verdict['distilled']}")


@app.command()
def stats(config: Path = CONFIG_OPTION) -> None:
    """Show today's counters and quota usage."""
    asyncio.run(_stats(get_settings(config)))


async def _stats(settings: Settings) -> None:
    service = _build_service(settings)
    data = await service.channel().send("GET_STATS")
    if data is None:
        print("❌ Could not read stats")
        raise typer.Exit(code=1)

    print(f"\n📊 Stats for {data['date']}:")
    print(f"  • Analyzed: {data['analyzed']}")
    print(f"  • Shown: {data['shown']} (nourished {data['nourished']}, distilled {data['distilled']})")
    print(f"  • Filtered: {data['filtered']}")
    print(f"\n⏱️  Time used: {data['time_used']}s of {data['time_limit']}s")
    if data["locked"]:
        print("  🔒 Locked out until midnight")
    print(f"\n⚙️  Mode: {data['classification_mode']}")
    print(f"  • Feed reordering: {'on' if data['feed_reordering_enabled'] else 'off'}")
    print(f"  • Logging: {'on' if data['logging_enabled'] else 'off'}")


@app.command()
def history(
    limit: int = typer.Option(20, help="Number of entries"),
    verdict: Optional[str] = typer.Option(None, help="Only show this verdict"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Show recent persisted classifications, newest first."""
    asyncio.run(_history(get_settings(config), limit, verdict))


async def _history(settings: Settings, limit: int, verdict: Optional[str]) -> None:
    service = _build_service(settings)
    await service.log.load()
    payload = {"limit": limit}
    if verdict:
        payload["verdict"] = verdict
    data = await service.channel().send("GET_LOG_HISTORY", **payload)

    entries = (data or {}).get("entries") or []
    if not entries:
        print("\n📭 No classification history (is logging enabled?)")
        return

    print(f"\n📜 Last {len(entries)} classification(s):")
    for entry in entries:
        emoji = VERDICT_EMOJI.get(entry["verdict"], "•")
        source = " (cached)" if entry.get("from_cache") else ""
        text = entry["text"] if len(entry["text"]) <= 60 else entry["text"][:57] + "..."
        print(f"  {emoji} {entry['verdict']}{source}: {text}")


@app.command("reset-stats")
def reset_stats(config: Path = CONFIG_OPTION) -> None:
    """Zero today's counters."""
    asyncio.run(_reset_stats(get_settings(config)))


async def _reset_stats(settings: Settings) -> None:
    service = _build_service(settings)
    await service.channel().send("RESET_STATS")
    print("✓ Stats reset")


if __name__ == "__main__":
    app()
