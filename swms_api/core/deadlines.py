"""Per-action deadlines for database work."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event, text
from sqlalchemy.orm import Session

# SQLSTATE raised by Postgres when statement_timeout cancels a query
QUERY_CANCELED_SQLSTATE = "57014"


class DeadlineExceeded(Exception):
    """Raised before a statement is issued once the deadline has passed."""

    def __init__(self, seconds: float):
        super().__init__(f"Action exceeded its {seconds:g}s deadline")
        self.seconds = seconds


def is_statement_timeout(exc: BaseException) -> bool:
    """True if a DBAPI error wraps a Postgres statement_timeout cancellation."""
    orig = getattr(exc, "orig", None)
    if orig is None:
        return False
    # psycopg 3 exposes sqlstate, psycopg2 exposes pgcode
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == QUERY_CANCELED_SQLSTATE


@contextmanager
def action_deadline(db: Session, seconds: float | None) -> Iterator[None]:
    """
    Bound the database work done on a session.

    Every ORM statement checks the deadline before it runs. On Postgres the
    same budget is applied server-side with SET LOCAL statement_timeout so a
    single hung query is cancelled too. The setting is transaction-scoped and
    disappears on commit/rollback.
    """
    if not seconds or seconds <= 0:
        yield
        return

    expires_at = time.monotonic() + seconds

    def _check_deadline(orm_execute_state) -> None:
        if time.monotonic() > expires_at:
            raise DeadlineExceeded(seconds)

    event.listen(db, "do_orm_execute", _check_deadline)
    try:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL statement_timeout = {int(seconds * 1000)}"))
        yield
    finally:
        event.remove(db, "do_orm_execute", _check_deadline)
