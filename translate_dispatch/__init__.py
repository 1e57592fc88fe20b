"""Concurrent, rate-limited, multi-provider translation dispatch."""

__version__ = "0.1.0"
