from datetime import datetime, timezone

from sqlalchemy import REAL, Column, DateTime, ForeignKey, Integer, Text, text

from .database import Base
from .exceptions import SchemaNotFoundError


def current_timestamp():
    """UTC timestamp in SQLite's CURRENT_TIMESTAMP format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _created_at():
    return Column(DateTime, default=current_timestamp, server_default=text("CURRENT_TIMESTAMP"))


class User(Base):
    __tablename__ = "users"
    id = Column(Text, primary_key=True, default="")
    name = Column(Text, nullable=False, default="")
    avatar = Column(Text, nullable=True)
    relationship = Column(Text, nullable=False, default="")
    color = Column(Text, nullable=False, default="")
    created_at = _created_at()


class MedicalRecord(Base):
    __tablename__ = "medical_records"
    id = Column(Text, primary_key=True, default="")
    user_id = Column(Text, ForeignKey("users.id"), nullable=False, default="")
    title = Column(Text, nullable=False, default="")
    hospital = Column(Text, nullable=False, default="")
    type = Column(Text, nullable=False, default="")
    date = Column(Text, nullable=False, default="")
    image_uri = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    is_abnormal = Column(Integer, default=0)
    created_at = _created_at()
    disease_id = Column(Text, ForeignKey("chronic_diseases.id"), nullable=True)


class KeyIndicator(Base):
    __tablename__ = "key_indicators"
    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(Text, ForeignKey("medical_records.id"), nullable=False, default="")
    name = Column(Text, nullable=False, default="")
    value = Column(Text, nullable=False, default="")
    unit = Column(Text, nullable=False, default="")
    normal_range = Column(Text, nullable=True)
    is_abnormal = Column(Integer, default=0)


class ChronicDisease(Base):
    __tablename__ = "chronic_diseases"
    id = Column(Text, primary_key=True, default="")
    user_id = Column(Text, ForeignKey("users.id"), nullable=False, default="")
    name = Column(Text, nullable=False, default="")
    type = Column(Text, nullable=False, default="")
    created_at = _created_at()


class DiseaseIndicator(Base):
    __tablename__ = "disease_indicators"
    id = Column(Integer, primary_key=True, autoincrement=True)
    disease_id = Column(Text, ForeignKey("chronic_diseases.id"), nullable=False, default="")
    name = Column(Text, nullable=False, default="")
    unit = Column(Text, nullable=False, default="")
    normal_range = Column(Text, nullable=False, default="")


class IndicatorValue(Base):
    __tablename__ = "indicator_values"
    id = Column(Integer, primary_key=True, autoincrement=True)
    indicator_id = Column(Integer, ForeignKey("disease_indicators.id"), nullable=False, default=0)
    date = Column(Text, nullable=False, default="")
    value = Column(REAL, nullable=False, default=0)
    is_abnormal = Column(Integer, default=0)


class HealthReminder(Base):
    __tablename__ = "health_reminders"
    id = Column(Text, primary_key=True, default="")
    disease_id = Column(Text, ForeignKey("chronic_diseases.id"), nullable=False, default="")
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    date = Column(Text, nullable=False, default="")
    type = Column(Text, nullable=False, default="")
    is_completed = Column(Integer, default=0)
    is_repeating = Column(Integer, default=0)
    repeat_interval = Column(Integer, nullable=True)


# Parents before children, so deletes walk it in reverse.
TABLE_NAMES = (
    "users",
    "medical_records",
    "key_indicators",
    "chronic_diseases",
    "disease_indicators",
    "indicator_values",
    "health_reminders",
)


def get_table(table_name):
    table = Base.metadata.tables.get(table_name)
    if table is None:
        raise SchemaNotFoundError(table_name)
    return table


def is_autoincrement(column):
    return column.autoincrement is True


def declared_default(column):
    """
    Resolve the value the registry declares for *column* when a caller omits it.

    Scalar defaults are returned as-is, callable defaults are invoked, and a
    column without a Python-side default resolves to ``None``.
    """
    default = column.default
    if default is None:
        return None
    if default.is_callable:
        return default.arg(None)
    if default.is_scalar:
        return default.arg
    return None
