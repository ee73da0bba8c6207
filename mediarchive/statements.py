"""
Dynamic insert-or-replace synthesis.

Callers hand over only the fields they have; every other live column is
filled with the default the registry declares for it, so adding an optional
column to the registry never requires touching call sites.
"""

from __future__ import annotations

from typing import Any, List, Mapping, NamedTuple

from sqlalchemy.engine import Connection

from .migrations import live_columns
from .models import declared_default, get_table, is_autoincrement


class PreparedInsert(NamedTuple):
    sql: str
    params: List[Any]


def prepare_insert(conn: Connection, table_name: str, record: Mapping[str, Any]) -> PreparedInsert:
    """
    Build ``INSERT OR REPLACE`` for *table_name* covering every live column.

    Autoincrement columns are left to the engine. A key present in *record*
    wins even when its value is ``None``; absent keys take the declared
    default. Raises :class:`~mediarchive.exceptions.SchemaNotFoundError` when
    the table is not registered.
    """
    table = get_table(table_name)
    declared = table.columns

    columns = []
    params = []
    for name in live_columns(conn, table_name):
        column = declared.get(name)
        if column is not None and is_autoincrement(column):
            continue
        columns.append(name)
        if name in record:
            params.append(record[name])
        else:
            params.append(declared_default(column) if column is not None else None)

    sql = "INSERT OR REPLACE INTO {} ({}) VALUES ({})".format(
        table_name,
        ", ".join(columns),
        ", ".join("?" for _ in columns),
    )
    return PreparedInsert(sql, params)


def execute_insert(conn: Connection, table_name: str, record: Mapping[str, Any]):
    """Prepare and run an insert; returns the cursor result (``lastrowid`` for new surrogate keys)."""
    statement = prepare_insert(conn, table_name, record)
    return conn.exec_driver_sql(statement.sql, tuple(statement.params))
