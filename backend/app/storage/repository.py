"""PostgreSQL persistence for gallery storage counters and the image index."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .aggregator import IndexPage
from .exceptions import StorageBackendError
from .models import GalleryStorageRecord, ImageClass


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


class _PostgresAccess:
    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()


def _row_to_record(row: dict) -> GalleryStorageRecord:
    originals = int(row.get("originals_bytes_used") or 0)
    finals = int(row.get("finals_bytes_used") or 0)
    owner_id = row.get("owner_id")
    return GalleryStorageRecord(
        gallery_id=str(row["gallery_id"]),
        owner_id=str(owner_id) if owner_id is not None else None,
        plan=row.get("plan"),
        selection_enabled=row.get("selection_enabled") is not False,
        originals_bytes_used=originals,
        finals_bytes_used=finals,
        bytes_used=int(row.get("bytes_used") or originals + finals),
        originals_limit_bytes=row.get("originals_limit_bytes"),
        finals_limit_bytes=row.get("finals_limit_bytes"),
        storage_limit_bytes=row.get("storage_limit_bytes"),
        last_bytes_used_recalculated_at=row.get("last_bytes_used_recalculated_at"),
    )


class PostgresGalleryStorageRepository(_PostgresAccess):
    """Reads gallery storage records and applies fenced counter writes."""

    def __init__(self, *, table: str = "galleries", conn: Optional[PgConnection] = None) -> None:
        super().__init__(conn=conn)
        self._table = sql.Identifier(table)

    def get_record(self, gallery_id: str) -> Optional[GalleryStorageRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                sql.SQL(
                    """
                    SELECT *
                    FROM {table}
                    WHERE gallery_id = %s
                    LIMIT 1
                    """
                ).format(table=self._table),
                (gallery_id,),
            )
            row = cursor.fetchone()
            return _row_to_record(row) if row else None

    def commit_recalculation(
        self,
        gallery_id: str,
        *,
        originals_bytes: int,
        finals_bytes: int,
        recalculated_at: datetime,
    ) -> Optional[GalleryStorageRecord]:
        """Write new counters unless a later reconciliation already committed.

        Returns the updated record, or ``None`` when the stored timestamp is
        not strictly earlier than ``recalculated_at``.
        """

        with self._cursor() as cursor:
            cursor.execute(
                sql.SQL(
                    """
                    UPDATE {table}
                    SET originals_bytes_used = %(originals)s,
                        finals_bytes_used = %(finals)s,
                        bytes_used = %(total)s,
                        last_bytes_used_recalculated_at = %(recalculated_at)s
                    WHERE gallery_id = %(gallery_id)s
                      AND (
                        last_bytes_used_recalculated_at IS NULL
                        OR last_bytes_used_recalculated_at < %(recalculated_at)s
                      )
                    RETURNING *
                    """
                ).format(table=self._table),
                {
                    "gallery_id": gallery_id,
                    "originals": originals_bytes,
                    "finals": finals_bytes,
                    "total": originals_bytes + finals_bytes,
                    "recalculated_at": recalculated_at,
                },
            )
            row = cursor.fetchone()
            return _row_to_record(row) if row else None


class PostgresImageIndex(_PostgresAccess):
    """Keyset-paginated size queries against the per-image index table."""

    def __init__(self, *, table: str = "gallery_images", conn: Optional[PgConnection] = None) -> None:
        super().__init__(conn=conn)
        self._table = sql.Identifier(table)

    def query_sizes(
        self,
        gallery_id: str,
        image_class: ImageClass,
        *,
        start_after: Optional[str],
        page_size: int,
    ) -> IndexPage:
        cursor_clause = sql.SQL("AND image_key > %(start_after)s") if start_after else sql.SQL("")
        query = sql.SQL(
            """
            SELECT image_key, size
            FROM {table}
            WHERE gallery_id = %(gallery_id)s
              AND type = %(type)s
              {cursor_clause}
            ORDER BY image_key
            LIMIT %(limit)s
            """
        ).format(table=self._table, cursor_clause=cursor_clause)
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    query,
                    {
                        "gallery_id": gallery_id,
                        "type": image_class.value,
                        "start_after": start_after,
                        "limit": page_size,
                    },
                )
                rows = cursor.fetchall() or []
        except psycopg2.Error as exc:
            raise StorageBackendError(f"image index query failed: {exc}") from exc

        sizes = tuple(int(row.get("size") or 0) for row in rows)
        last_key = rows[-1]["image_key"] if len(rows) >= page_size else None
        return IndexPage(sizes=sizes, last_key=last_key)


__all__ = ["PostgresGalleryStorageRepository", "PostgresImageIndex"]
