"""Services package."""

from .adapters import AdapterRegistry, FallbackChain

__all__ = [
    "AdapterRegistry",
    "FallbackChain",
]
