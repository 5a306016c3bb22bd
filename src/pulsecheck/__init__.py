"""Heartbeat ping client for scheduled jobs."""

__version__ = "0.4.0"
