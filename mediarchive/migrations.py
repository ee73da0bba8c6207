"""
mediarchive.migrations
~~~~~~~~~~~~~~~~~~~~~~

Additive, forward-only schema evolution.

On every start :func:`ensure_schema` creates missing tables from the baseline
DDL, introspects the live column list of each table and adds every column the
registry declares but the database lacks.  Columns are never dropped or
renamed, and there is no stored schema version: the registry in
:mod:`mediarchive.models` is the version.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .database import BASELINE_DDL
from .exceptions import MigrationColumnError
from .models import TABLE_NAMES, get_table

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    added: Dict[str, List[str]] = field(default_factory=dict)
    failures: List[MigrationColumnError] = field(default_factory=list)
    failed_tables: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.failed_tables


def live_columns(conn: Connection, table_name: str) -> List[str]:
    """Column names of *table_name* as the database reports them, in table order."""
    return [column["name"] for column in inspect(conn).get_columns(table_name)]


def render_literal(value) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def _default_clause(column) -> str | None:
    server_default = column.server_default
    if server_default is not None:
        arg = server_default.arg
        # text() clauses such as CURRENT_TIMESTAMP are emitted verbatim
        return arg.text if hasattr(arg, "text") else render_literal(arg)
    default = column.default
    if default is not None and default.is_scalar and default.arg is not None:
        return render_literal(default.arg)
    return None


def add_column_statement(table_name: str, column, dialect) -> str:
    preparer = dialect.identifier_preparer
    statement = "ALTER TABLE {} ADD COLUMN {} {}".format(
        preparer.quote(table_name),
        preparer.quote(column.name),
        column.type.compile(dialect=dialect),
    )
    default = _default_clause(column)
    if default is not None:
        statement += f" DEFAULT {default}"
    if not column.nullable:
        statement += " NOT NULL"
    return statement


def _create_table(conn: Connection, table_name: str) -> None:
    baseline = BASELINE_DDL.get(table_name)
    if baseline is not None:
        conn.exec_driver_sql(baseline)
    else:
        # Tables newer than the baseline are built straight from the registry.
        get_table(table_name).create(conn, checkfirst=True)


def migrate_table(engine: Engine, table_name: str, report: MigrationReport) -> None:
    table = get_table(table_name)

    try:
        with engine.begin() as conn:
            _create_table(conn, table_name)
            existing = set(live_columns(conn, table_name))
    except SQLAlchemyError:
        logger.exception("Could not prepare table %s, skipping its migration", table_name)
        report.failed_tables.append(table_name)
        return

    for column in table.columns:
        if column.name in existing:
            continue

        statement = add_column_statement(table_name, column, engine.dialect)
        logger.info("Adding column %s.%s: %s", table_name, column.name, statement)
        try:
            with engine.begin() as conn:
                conn.exec_driver_sql(statement)
        except SQLAlchemyError as exc:
            error = MigrationColumnError(table_name, column.name, statement, getattr(exc, "orig", None) or exc)
            logger.error("%s: %s", error.message, error.detail[-1])
            report.failures.append(error)
        else:
            report.added.setdefault(table_name, []).append(column.name)


def ensure_schema(engine: Engine) -> MigrationReport:
    """
    Bring every registry table up to the declared column set.

    Failures are logged and collected on the returned report, never raised,
    so a partially migrated table does not stop the store from starting.
    A table missing from the registry is a programming error and raises
    :class:`~mediarchive.exceptions.SchemaNotFoundError`.
    """
    report = MigrationReport()
    logger.info("Checking schema of %d tables", len(TABLE_NAMES))

    for table_name in TABLE_NAMES:
        migrate_table(engine, table_name, report)

    if report.ok:
        logger.info("Schema up to date (added: %s)", report.added or "nothing")
    else:
        logger.warning(
            "Schema migration finished with %d column failure(s), %d table failure(s)",
            len(report.failures),
            len(report.failed_tables),
        )
    return report
