"""
Read-side helpers: statistics counts, reassembly of joined record rows and
the numeric history of a key indicator across records.
"""

from __future__ import annotations

import calendar
import logging
import re
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.engine import Connection

from .schemas import IndicatorPoint, KeyIndicator, MedicalRecord, Statistics

logger = logging.getLogger(__name__)

RANGE_MONTHS = {"1M": 1, "3M": 3, "6M": 6, "1Y": 12}

# Leading number of strings such as "6.5", "120/80" or "7.2 H"
_NUMBER_PREFIX = re.compile(r"^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)")


def _where(conditions: List[str]) -> str:
    return " WHERE " + " AND ".join(conditions) if conditions else ""


def _count(conn: Connection, sql: str, params: list) -> int:
    return conn.exec_driver_sql(sql, tuple(params)).scalar() or 0


def count_statistics(conn: Connection, user_id: Optional[str] = None) -> Statistics:
    """
    Four independent counts; they are not a point-in-time snapshot of each
    other under concurrent writes.
    """
    user_filter = ["user_id = ?"] if user_id else []
    user_params = [user_id] if user_id else []

    total_records = _count(
        conn, "SELECT COUNT(*) FROM medical_records" + _where(user_filter), user_params
    )
    chronic_diseases = _count(
        conn, "SELECT COUNT(*) FROM chronic_diseases" + _where(user_filter), user_params
    )

    reminder_filter = ["hr.is_completed = 0"] + (["cd.user_id = ?"] if user_id else [])
    pending_reminders = _count(
        conn,
        "SELECT COUNT(*) FROM health_reminders hr "
        "JOIN chronic_diseases cd ON hr.disease_id = cd.id" + _where(reminder_filter),
        user_params,
    )

    abnormal_records = _count(
        conn,
        "SELECT COUNT(*) FROM medical_records" + _where(["is_abnormal = 1"] + user_filter),
        user_params,
    )

    return Statistics(
        total_records=total_records,
        chronic_diseases=chronic_diseases,
        pending_reminders=pending_reminders,
        abnormal_records=abnormal_records,
    )


def indicator_from_row(row) -> KeyIndicator:
    return KeyIndicator(
        name=row["name"],
        value=row["value"],
        unit=row["unit"] or "",
        normal_range=row["normal_range"],
        is_abnormal=bool(row["is_abnormal"]),
    )


def records_from_rows(rows: Iterable) -> List[MedicalRecord]:
    """
    Fold ``medical_records LEFT JOIN key_indicators`` rows (indicator columns
    prefixed ``ki_``) into one record per id, keeping the row order.
    """
    records = {}
    for row in rows:
        row = row._mapping
        record = records.get(row["id"])
        if record is None:
            record = MedicalRecord(
                id=row["id"],
                user_id=row["user_id"],
                title=row["title"],
                hospital=row["hospital"],
                type=row["type"],
                date=row["date"],
                image_uri=row.get("image_uri"),
                description=row.get("description"),
                is_abnormal=bool(row["is_abnormal"]),
                created_at=None if row.get("created_at") is None else str(row["created_at"]),
                disease_id=row.get("disease_id"),
                key_indicators=[],
            )
            records[row["id"]] = record

        if row["ki_id"] is not None:
            record.key_indicators.append(
                KeyIndicator(
                    name=row["ki_name"],
                    value=row["ki_value"],
                    unit=row["ki_unit"] or "",
                    normal_range=row["ki_normal_range"],
                    is_abnormal=bool(row["ki_is_abnormal"]),
                )
            )
    return list(records.values())


def months_before(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def range_cutoff(time_range: str, today: Optional[date] = None) -> Optional[date]:
    """First date included by *time_range*; ``None`` for ``ALL``."""
    if time_range == "ALL":
        return None
    if time_range not in RANGE_MONTHS:
        raise ValueError(f"Unknown time range '{time_range}'")
    return months_before(today or date.today(), RANGE_MONTHS[time_range])


def parse_numeric(value) -> Optional[float]:
    match = _NUMBER_PREFIX.match(value or "")
    if not match:
        return None
    return float(match.group(1))


def indicator_history(
    conn: Connection,
    name: str,
    user_id: Optional[str] = None,
    time_range: str = "ALL",
    today: Optional[date] = None,
) -> List[IndicatorPoint]:
    conditions = ["ki.name = ?"]
    params = [name]
    if user_id:
        conditions.append("mr.user_id = ?")
        params.append(user_id)
    cutoff = range_cutoff(time_range, today)
    if cutoff is not None:
        conditions.append("mr.date >= ?")
        params.append(cutoff.isoformat())

    rows = conn.exec_driver_sql(
        "SELECT mr.date, mr.title, mr.hospital, ki.value, ki.is_abnormal "
        "FROM key_indicators ki JOIN medical_records mr ON mr.id = ki.record_id"
        + _where(conditions)
        + " ORDER BY mr.date ASC, ki.id ASC",
        tuple(params),
    )

    points = []
    for row in rows:
        row = row._mapping
        value = parse_numeric(row["value"])
        if value is None:
            logger.debug("Skipping non-numeric %s value %r on %s", name, row["value"], row["date"])
            continue
        points.append(
            IndicatorPoint(
                date=row["date"],
                value=value,
                record_title=row["title"],
                hospital=row["hospital"],
                is_abnormal=bool(row["is_abnormal"]),
            )
        )
    return points
