"""Fail-closed content moderation pipeline for live social feeds."""

__version__ = "0.1.0"
