"""Database module"""
from .models import Base, User, OutboundEmail
from .connection import get_db, init_db, get_session_factory

__all__ = [
    'Base',
    'User',
    'OutboundEmail',
    'get_db',
    'init_db',
    'get_session_factory',
]
