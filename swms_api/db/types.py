"""Column types that use native Postgres types and degrade on other backends."""

from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import CITEXT, JSONB


# JSONB on Postgres, JSON text elsewhere (SQLite test databases)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

# Case-insensitive email addresses
EmailAddress = String(320).with_variant(CITEXT(), "postgresql")
