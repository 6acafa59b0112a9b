"""Adapters — tool bindings that run agent actions on the host.

Public re-exports for convenient access.
"""

from execsafe.adapters.base import Adapter, ExecutionContext
from execsafe.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
]
