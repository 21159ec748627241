# firstrun/models/user.py
"""
Database model for users.
The initialization flow creates exactly one row here: the pre-activated,
pre-verified administrator. The application owns the table afterwards.
"""
import uuid
from tortoise import fields, models

class User(models.Model):
    """
    User database model.

    Security:
    - Password is stored as a hash (never store plain text passwords)
    - Username must be unique across all users
    - Role determines access level (user vs admin)
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)  # Primary key: unique user identifier
    username = fields.CharField(
        max_length=256,
        unique=True,
        index=True
    )  # User login name (must be unique, indexed for fast lookups)
    email = fields.CharField(max_length=256, null=True)
    password_hash = fields.CharField(max_length=255)  # Argon2 hash
    first_name = fields.CharField(max_length=100, null=True)
    last_name = fields.CharField(max_length=100, null=True)
    role = fields.CharField(max_length=16, default="user")  # "user" (default) or "admin"
    is_active = fields.BooleanField(default=False)
    is_email_verified = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)  # auto-set on creation

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "users"  # Database table name
