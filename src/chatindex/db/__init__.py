"""chatindex database layer."""

from chatindex.db.connection import Database, transaction
from chatindex.db.migrations import MIGRATIONS, run_migrations
from chatindex.db.repository import Repository
from chatindex.db.schema import initialize
from chatindex.db.vectors import deserialize_vector, serialize_vector

__all__ = [
    "Database",
    "transaction",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Repository",
    "serialize_vector",
    "deserialize_vector",
]
