"""Deterministic content fingerprints."""


def content_hash(text: str) -> str:
    """Hash text into a 32-bit unsigned fingerprint rendered as hex.

    djb2 variant (``hash * 31 + unit``) over UTF-16 code units, so a
    fingerprint computed here matches one computed by a browser host for
    the same string. No seed: persisted cache keys stay valid across
    restarts.
    """
    value = 5381
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    return format(value, "x")
