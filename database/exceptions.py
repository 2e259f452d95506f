"""Database exceptions."""

class DatabaseError(Exception):
    """Base exception for database operations."""
    pass

class DatabaseSchemaError(DatabaseError):
    """Raised when the schema cannot be loaded, validated or migrated."""
    pass

class DatabaseNotInitializedError(DatabaseError):
    """Raised when the connection pool is requested before it exists."""
    pass
