"""
Storage collaborators used by the initialization engine:
- base: StorageCapability interface and account types
- tortoise_storage: SQLite / PostgreSQL storage through Tortoise ORM
- probes: connectivity and table listing probes
"""
