"""
Infrastructure layer - booking store implementations.
Keeps business logic clean from storage details.
"""

from .memory_store import InMemoryBookingStore
from .sql_store import SqlAlchemyBookingStore

__all__ = ['InMemoryBookingStore', 'SqlAlchemyBookingStore']
