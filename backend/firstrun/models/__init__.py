# firstrun/models/__init__.py
"""
Database models module initialization.

Models exported:
- User: account created for the administrator during initialization
"""
from .user import User
