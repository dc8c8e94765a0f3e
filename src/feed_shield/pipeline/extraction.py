"""Normalize observed units into classification text."""

from typing import Any

from feed_shield.core.entities import ContentParts
from feed_shield.core.hasher import content_hash
from feed_shield.core.interfaces import PresentationHost


def format_for_classification(parts: ContentParts) -> str:
    """Concatenate body, author, quoted content and link preview in fixed order."""
    segments = [parts.text]
    if parts.author:
        segments.append(f"Author: {parts.author}")
    if parts.quote_text:
        segments.append(f"Quote: {parts.quote_text}")
    if parts.link_preview_text:
        segments.append(f"Link: {parts.link_preview_text}")
    return "\n".join(segments)


def extract_content(host: PresentationHost, handle: Any) -> tuple[str, str]:
    """Return ``(text, url)`` for a unit."""
    parts = host.extract(handle)
    return format_for_classification(parts), parts.url


def fingerprint_of(host: PresentationHost, handle: Any) -> str:
    text, _ = extract_content(host, handle)
    return content_hash(text)
