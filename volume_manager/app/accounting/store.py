"""Transaction boundary for ledger and repository work in PostgreSQL."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from psycopg2.extensions import connection as PgConnection

from ..db import managed_connection
from ..storages.repository import PostgresStorageLedger
from ..volumes.repository import PostgresVolumeRepository

logger = logging.getLogger(__name__)


@dataclass
class PostgresStoreSession:
    connection: PgConnection
    storages: PostgresStorageLedger
    volumes: PostgresVolumeRepository


class PostgresVolumeStore:
    """Opens one connection per logical operation and commits it atomically.

    ``statement_timeout_seconds`` bounds each statement of the transaction so a
    caller deadline aborts (and rolls back) work that has not committed yet.
    """

    def __init__(self, *, statement_timeout_seconds: Optional[float] = None) -> None:
        self._statement_timeout_ms = (
            int(statement_timeout_seconds * 1000) if statement_timeout_seconds else None
        )

    @contextmanager
    def transaction(self) -> Iterator[PostgresStoreSession]:
        with managed_connection() as (connection, _):
            if self._statement_timeout_ms:
                with connection.cursor() as cursor:
                    cursor.execute(
                        "SET LOCAL statement_timeout = %s",
                        (self._statement_timeout_ms,),
                    )
            ledger = PostgresStorageLedger(conn=connection)
            yield PostgresStoreSession(
                connection=connection,
                storages=ledger,
                volumes=PostgresVolumeRepository(ledger=ledger, conn=connection),
            )


__all__ = ["PostgresStoreSession", "PostgresVolumeStore"]
