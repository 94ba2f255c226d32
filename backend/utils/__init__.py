# Utils package
# utils/__init__.py
"""Utility functions and helpers"""

from .config import settings, Settings
from .logging import StructuredLogger
from .sql import extract_sql_from_response, is_read_only, normalize_question, query_hash

__all__ = [
    'settings', 'Settings',
    'StructuredLogger',
    'extract_sql_from_response', 'is_read_only', 'normalize_question', 'query_hash'
]
