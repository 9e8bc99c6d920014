"""Database infrastructure — engine, ORM models, and SQL-backed collaborators."""

from arbitrated_escrow.infrastructure.database.engine import (
    close_db,
    get_session_factory,
    init_db,
)
from arbitrated_escrow.infrastructure.database.orm_models import (
    Base,
    DocumentRow,
    UserRow,
)
from arbitrated_escrow.infrastructure.database.repositories import (
    SqlDocumentStore,
    SqlUserDirectory,
)

__all__ = [
    "Base",
    "DocumentRow",
    "UserRow",
    "SqlDocumentStore",
    "SqlUserDirectory",
    "get_session_factory",
    "init_db",
    "close_db",
]
