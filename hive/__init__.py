"""Routing and yield aggregation core for the Hive Solana assistant."""

__version__ = "0.1.0"
