"""Build, broadcast with retries, and read CosmWasm chain transactions."""

__version__ = "0.1.0"
__all__ = ["broadcaster", "errors", "snapshots", "tx_builder", "tx_response"]