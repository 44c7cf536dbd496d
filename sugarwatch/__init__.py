"""SugarWatch — Nightscout polling and glucose alarm engine."""

__version__ = "0.1.0"
