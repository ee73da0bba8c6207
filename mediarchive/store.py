"""
mediarchive.store
~~~~~~~~~~~~~~~~~

Entity-level operations over the local database.

A :class:`HealthStore` owns one engine, opened by :meth:`HealthStore.init`
and held until :meth:`HealthStore.close`. Writes go through the statement
synthesizer so callers only pass the fields they have; every logical write
that touches more than one row runs in a single transaction.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import delete, literal_column, select, update
from sqlalchemy.exc import DBAPIError

from . import aggregation
from .database import create_db_engine
from .exceptions import QueryError, StoreNotInitializedError
from .migrations import MigrationReport, ensure_schema
from .models import TABLE_NAMES, get_table
from .schemas import (
    ChronicDisease,
    ChronicDiseaseCreate,
    DiseaseIndicator,
    HealthReminder,
    IndicatorPoint,
    IndicatorValue,
    KeyIndicator,
    MedicalRecord,
    MedicalRecordCreate,
    Statistics,
    User,
    UserCreate,
)
from .statements import execute_insert

logger = logging.getLogger(__name__)

users_table = get_table("users")
records_table = get_table("medical_records")
key_indicators_table = get_table("key_indicators")
diseases_table = get_table("chronic_diseases")
disease_indicators_table = get_table("disease_indicators")
values_table = get_table("indicator_values")
reminders_table = get_table("health_reminders")

ROWID = literal_column("rowid")

RECORD_QUERY = """
    SELECT mr.*,
           ki.id AS ki_id,
           ki.name AS ki_name,
           ki.value AS ki_value,
           ki.unit AS ki_unit,
           ki.normal_range AS ki_normal_range,
           ki.is_abnormal AS ki_is_abnormal
    FROM medical_records mr
    LEFT JOIN key_indicators ki ON mr.id = ki.record_id
"""


def _coerce(model, value):
    if isinstance(value, model):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump()
    return model.model_validate(value)


class HealthStore:
    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.engine = None
        self.migration_report: Optional[MigrationReport] = None

    # ----------------------------
    # Lifecycle
    # ----------------------------
    @property
    def initialized(self) -> bool:
        return self.engine is not None

    def init(self) -> MigrationReport:
        """Open the database and run the schema migration. Safe to call twice."""
        if self.engine is not None:
            return self.migration_report

        engine = create_db_engine(self.database_url)
        self.migration_report = ensure_schema(engine)
        self.engine = engine
        logger.info("Store ready at %s", engine.url)
        return self.migration_report

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    @contextmanager
    def _connection(self, write=False):
        if self.engine is None:
            raise StoreNotInitializedError()
        try:
            if write:
                with self.engine.begin() as conn:
                    yield conn
            else:
                with self.engine.connect() as conn:
                    yield conn
        except DBAPIError as exc:
            raise QueryError(message="Database rejected the statement", detail=str(exc.orig)) from exc

    # ----------------------------
    # Users
    # ----------------------------
    def add_user(self, user: UserCreate) -> None:
        user = _coerce(UserCreate, user)
        with self._connection(write=True) as conn:
            execute_insert(
                conn,
                "users",
                {
                    "id": user.id,
                    "name": user.name,
                    "avatar": user.avatar,
                    "relationship": user.relationship,
                    "color": user.color,
                },
            )

    def get_users(self) -> List[User]:
        query = select(
            users_table.c.id,
            users_table.c.name,
            users_table.c.avatar,
            users_table.c.relationship,
            users_table.c.color,
        ).order_by(users_table.c.created_at, ROWID)
        with self._connection() as conn:
            return [User.model_validate(dict(row)) for row in conn.execute(query).mappings()]

    def update_user(self, user: UserCreate) -> bool:
        user = _coerce(UserCreate, user)
        with self._connection(write=True) as conn:
            result = conn.execute(
                update(users_table)
                .where(users_table.c.id == user.id)
                .values(
                    name=user.name,
                    avatar=user.avatar or None,
                    relationship=user.relationship,
                    color=user.color,
                )
            )
            return result.rowcount > 0

    def delete_user(self, user_id: str, cascade: bool = False) -> None:
        """
        Delete a user. Without *cascade* their records and diseases stay behind
        as orphans; with it every dependent row goes in the same transaction.
        """
        with self._connection(write=True) as conn:
            if cascade:
                self._purge_diseases(conn, diseases_table.c.user_id == user_id)
                user_records = select(records_table.c.id).where(records_table.c.user_id == user_id)
                conn.execute(
                    delete(key_indicators_table).where(key_indicators_table.c.record_id.in_(user_records))
                )
                conn.execute(delete(records_table).where(records_table.c.user_id == user_id))
            conn.execute(delete(users_table).where(users_table.c.id == user_id))
        logger.info("Deleted user %s (cascade=%s)", user_id, cascade)

    # ----------------------------
    # Medical records
    # ----------------------------
    def add_medical_record(self, record: MedicalRecordCreate) -> None:
        """
        Upsert a record. When ``key_indicators`` is given the stored set is
        replaced by it wholesale; ``None`` leaves existing indicators alone.
        """
        record = _coerce(MedicalRecordCreate, record)
        row = {
            "id": record.id,
            "user_id": record.user_id,
            "title": record.title,
            "hospital": record.hospital,
            "type": record.type,
            "date": record.date,
            "image_uri": record.image_uri,
            "description": record.description,
            "is_abnormal": int(record.is_abnormal),
            "disease_id": record.disease_id,
        }
        if record.created_at:
            row["created_at"] = record.created_at

        with self._connection(write=True) as conn:
            execute_insert(conn, "medical_records", row)

            if record.key_indicators is not None:
                conn.execute(
                    delete(key_indicators_table).where(key_indicators_table.c.record_id == record.id)
                )
                for indicator in record.key_indicators:
                    execute_insert(
                        conn,
                        "key_indicators",
                        {
                            "record_id": record.id,
                            "name": indicator.name,
                            "value": indicator.value,
                            "unit": indicator.unit,
                            "normal_range": indicator.normal_range,
                            "is_abnormal": int(indicator.is_abnormal),
                        },
                    )
        logger.info(
            "Saved record %s with %s indicator(s)",
            record.id,
            "unchanged" if record.key_indicators is None else len(record.key_indicators),
        )

    def get_medical_records(
        self,
        user_id: Optional[str] = None,
        record_type: Optional[str] = None,
        disease_id: Optional[str] = None,
    ) -> List[MedicalRecord]:
        conditions = []
        params = []
        if user_id:
            conditions.append("mr.user_id = ?")
            params.append(user_id)
        if record_type:
            conditions.append("mr.type = ?")
            params.append(record_type)
        if disease_id:
            conditions.append("mr.disease_id = ?")
            params.append(disease_id)

        query = RECORD_QUERY
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY mr.date DESC, mr.id, ki.id"

        with self._connection() as conn:
            return aggregation.records_from_rows(conn.exec_driver_sql(query, tuple(params)))

    def get_medical_records_by_disease(self, disease_id: str) -> List[MedicalRecord]:
        return self.get_medical_records(disease_id=disease_id)

    def get_medical_record(self, record_id: str) -> Optional[MedicalRecord]:
        with self._connection() as conn:
            records = aggregation.records_from_rows(
                conn.exec_driver_sql(RECORD_QUERY + " WHERE mr.id = ? ORDER BY ki.id", (record_id,))
            )
        return records[0] if records else None

    def get_key_indicators(self, record_id: str) -> List[KeyIndicator]:
        query = (
            select(key_indicators_table)
            .where(key_indicators_table.c.record_id == record_id)
            .order_by(key_indicators_table.c.id)
        )
        with self._connection() as conn:
            return [aggregation.indicator_from_row(row) for row in conn.execute(query).mappings()]

    def delete_medical_record(self, record_id: str) -> None:
        with self._connection(write=True) as conn:
            conn.execute(delete(key_indicators_table).where(key_indicators_table.c.record_id == record_id))
            conn.execute(delete(records_table).where(records_table.c.id == record_id))

    # ----------------------------
    # Chronic diseases
    # ----------------------------
    def add_chronic_disease(self, disease: ChronicDiseaseCreate) -> None:
        """
        Upsert a disease and append its indicators, their values and its
        reminders. Indicators have no identity of their own, so saving the
        same disease twice stores its indicators twice.
        """
        disease = _coerce(ChronicDiseaseCreate, disease)
        with self._connection(write=True) as conn:
            execute_insert(
                conn,
                "chronic_diseases",
                {"id": disease.id, "user_id": disease.user_id, "name": disease.name, "type": disease.type},
            )

            for indicator in disease.indicators:
                result = execute_insert(
                    conn,
                    "disease_indicators",
                    {
                        "disease_id": disease.id,
                        "name": indicator.name,
                        "unit": indicator.unit,
                        "normal_range": indicator.normal_range,
                    },
                )
                indicator_id = result.lastrowid
                for value in indicator.values:
                    execute_insert(
                        conn,
                        "indicator_values",
                        {
                            "indicator_id": indicator_id,
                            "date": value.date,
                            "value": value.value,
                            "is_abnormal": int(value.is_abnormal),
                        },
                    )

            for reminder in disease.reminders:
                execute_insert(
                    conn,
                    "health_reminders",
                    {
                        "id": reminder.id,
                        "disease_id": disease.id,
                        "title": reminder.title,
                        "description": reminder.description,
                        "date": reminder.date,
                        "type": reminder.type,
                        "is_completed": int(reminder.is_completed),
                        "is_repeating": int(reminder.is_repeating),
                        "repeat_interval": reminder.repeat_interval,
                    },
                )
        logger.info(
            "Saved disease %s with %d indicator(s) and %d reminder(s)",
            disease.id,
            len(disease.indicators),
            len(disease.reminders),
        )

    def get_chronic_diseases(self, user_id: Optional[str] = None) -> List[ChronicDisease]:
        query = select(
            diseases_table.c.id,
            diseases_table.c.user_id,
            diseases_table.c.name,
            diseases_table.c.type,
        ).order_by(diseases_table.c.created_at.desc(), ROWID.desc())
        if user_id:
            query = query.where(diseases_table.c.user_id == user_id)

        result = []
        with self._connection() as conn:
            for disease in conn.execute(query).mappings().all():
                indicators = []
                indicator_rows = conn.execute(
                    select(disease_indicators_table)
                    .where(disease_indicators_table.c.disease_id == disease["id"])
                    .order_by(disease_indicators_table.c.id)
                ).mappings().all()
                for indicator in indicator_rows:
                    values = conn.execute(
                        select(values_table)
                        .where(values_table.c.indicator_id == indicator["id"])
                        .order_by(values_table.c.date.desc(), values_table.c.id.desc())
                    ).mappings()
                    indicators.append(
                        DiseaseIndicator(
                            name=indicator["name"],
                            unit=indicator["unit"] or "",
                            normal_range=indicator["normal_range"] or "",
                            values=[
                                IndicatorValue(
                                    date=value["date"],
                                    value=value["value"],
                                    is_abnormal=bool(value["is_abnormal"]),
                                )
                                for value in values
                            ],
                        )
                    )

                reminders = conn.execute(
                    select(reminders_table)
                    .where(reminders_table.c.disease_id == disease["id"])
                    .order_by(reminders_table.c.date)
                ).mappings()
                result.append(
                    ChronicDisease(
                        id=disease["id"],
                        user_id=disease["user_id"],
                        name=disease["name"],
                        type=disease["type"],
                        indicators=indicators,
                        reminders=[
                            HealthReminder(
                                id=reminder["id"],
                                title=reminder["title"],
                                description=reminder["description"] or "",
                                date=reminder["date"],
                                type=reminder["type"],
                                is_completed=bool(reminder["is_completed"]),
                                is_repeating=bool(reminder["is_repeating"]),
                                repeat_interval=reminder["repeat_interval"],
                            )
                            for reminder in reminders
                        ],
                    )
                )
        return result

    def delete_chronic_disease(self, disease_id: str) -> None:
        """Delete a disease with its series and reminders; linked records are unlinked, not deleted."""
        with self._connection(write=True) as conn:
            self._purge_diseases(conn, diseases_table.c.id == disease_id)
            conn.execute(
                update(records_table).where(records_table.c.disease_id == disease_id).values(disease_id=None)
            )

    def set_reminder_completed(self, reminder_id: str, completed: bool = True) -> bool:
        with self._connection(write=True) as conn:
            result = conn.execute(
                update(reminders_table)
                .where(reminders_table.c.id == reminder_id)
                .values(is_completed=int(completed))
            )
            return result.rowcount > 0

    @staticmethod
    def _purge_diseases(conn, condition):
        disease_ids = select(diseases_table.c.id).where(condition)
        indicator_ids = select(disease_indicators_table.c.id).where(
            disease_indicators_table.c.disease_id.in_(disease_ids)
        )
        conn.execute(delete(values_table).where(values_table.c.indicator_id.in_(indicator_ids)))
        conn.execute(
            delete(disease_indicators_table).where(disease_indicators_table.c.disease_id.in_(disease_ids))
        )
        conn.execute(delete(reminders_table).where(reminders_table.c.disease_id.in_(disease_ids)))
        conn.execute(delete(diseases_table).where(condition))

    # ----------------------------
    # Aggregates
    # ----------------------------
    def get_statistics(self, user_id: Optional[str] = None) -> Statistics:
        with self._connection() as conn:
            return aggregation.count_statistics(conn, user_id)

    def get_indicator_history(
        self,
        name: str,
        user_id: Optional[str] = None,
        time_range: str = "ALL",
        today: Optional[date] = None,
    ) -> List[IndicatorPoint]:
        with self._connection() as conn:
            return aggregation.indicator_history(conn, name, user_id, time_range, today)

    def clear_all_data(self) -> None:
        """Delete every row of every table. Callers are expected to confirm first."""
        with self._connection(write=True) as conn:
            for table_name in reversed(TABLE_NAMES):
                conn.execute(delete(get_table(table_name)))
        logger.warning("All data cleared")


store = HealthStore()
