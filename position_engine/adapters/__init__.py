"""
Position Engine - Adapters Package.

============================================================
PURPOSE
============================================================
Collaborator interfaces and their in-process implementations.

AVAILABLE ADAPTERS:
- MockOrderExecutor: For testing and dry runs
- InMemoryPositionStore: For testing

The SQL store lives in position_engine.repository.

============================================================
"""

from .base import OrderExecutor, PositionStore
from .mock import InMemoryPositionStore, MockConfig, MockOrder, MockOrderExecutor


__all__ = [
    # Interfaces
    "OrderExecutor",
    "PositionStore",
    # Mock
    "MockConfig",
    "MockOrder",
    "MockOrderExecutor",
    "InMemoryPositionStore",
]
