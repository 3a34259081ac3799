"""
Database module for UniGuide
Provides SQLite connection handling, schema management and the repository layer
"""

from .connection import DatabaseConnection
from .schema import DatabaseSchema
from .unit_of_work import UnitOfWork

__all__ = [
    'DatabaseConnection',
    'DatabaseSchema',
    'UnitOfWork',
]
