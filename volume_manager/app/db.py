"""Connection and cursor helpers shared by the PostgreSQL repositories."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..app_context import get_conn
from .errors import AlreadyExistsError, InternalError, VolumeManagerError

logger = logging.getLogger(__name__)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


@contextmanager
def dict_cursor(conn: Optional[PgConnection], *, conflict_message: Optional[str] = None) -> Iterator[PgCursor]:
    """Yield a ``RealDictCursor`` and translate driver errors into domain errors.

    ``conflict_message`` is used for unique violations; without it they are
    reported as internal errors like any other driver failure.
    """

    with managed_connection(conn) as (connection, managed):
        cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        try:
            yield cursor
            if managed:
                connection.commit()
        except VolumeManagerError:
            if managed:
                connection.rollback()
            raise
        except psycopg2.errors.UniqueViolation as exc:
            if managed:
                connection.rollback()
            if conflict_message is None:
                logger.exception("Unexpected unique violation")
                raise InternalError("unexpected unique violation") from exc
            raise AlreadyExistsError(conflict_message) from exc
        except psycopg2.errors.QueryCanceled as exc:
            if managed:
                connection.rollback()
            raise InternalError("database statement timed out") from exc
        except psycopg2.Error as exc:
            if managed:
                connection.rollback()
            logger.exception("Database operation failed")
            raise InternalError("database operation failed") from exc
        finally:
            cursor.close()


__all__ = ["dict_cursor", "managed_connection"]
