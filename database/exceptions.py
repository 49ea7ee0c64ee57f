"""Database error types."""

class DatabaseError(Exception):
    """Raised when a database operation fails."""
    pass

class DatabaseSchemaError(DatabaseError):
    """Raised when the schema cannot be loaded or created."""
    pass
