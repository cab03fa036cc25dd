"""Hourly-active-user ranking of Sui DApps built from checkpoint files."""

__version__ = "0.1.0"