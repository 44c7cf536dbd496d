"""Monitoring engine exceptions."""

from __future__ import annotations


class EngineError(Exception):
    """Base exception for monitoring engine errors."""


class EngineStoppedError(EngineError):
    """Operation requires a running scheduler."""
