from .database import Database, UnitOfWork

__all__ = [
    "Database",
    "UnitOfWork",
]
