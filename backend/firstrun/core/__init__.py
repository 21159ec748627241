# firstrun/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- db: Tortoise ORM configuration and connection management
- errors: initialization error hierarchy
- fileio: atomic file writes
- security: password hashing, secrets and redaction
"""
