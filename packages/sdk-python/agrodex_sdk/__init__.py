"""AgroDex Python SDK."""

__version__ = "0.1.0"

from agrodex_sdk.client import AgroDexAPIError, AgroDexClient

__all__ = ["AgroDexClient", "AgroDexAPIError"]
