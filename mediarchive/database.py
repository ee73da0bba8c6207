"""
mediarchive.database
~~~~~~~~~~~~~~~~~~~~

Engine construction and the baseline DDL used to bootstrap an empty database.

The baseline is deliberately frozen: new columns are declared on the models
in :mod:`mediarchive.models` and added by :func:`mediarchive.migrations.ensure_schema`,
so the statements below may lag the registry.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from . import config

Base = declarative_base()


BASELINE_DDL = {
    "users": """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            avatar TEXT,
            relationship TEXT NOT NULL,
            color TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "medical_records": """
        CREATE TABLE IF NOT EXISTS medical_records (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            hospital TEXT NOT NULL,
            type TEXT NOT NULL,
            date TEXT NOT NULL,
            image_uri TEXT,
            description TEXT,
            is_abnormal INTEGER DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            disease_id TEXT,
            FOREIGN KEY (user_id) REFERENCES users (id)
        )
    """,
    "key_indicators": """
        CREATE TABLE IF NOT EXISTS key_indicators (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            record_id TEXT NOT NULL,
            name TEXT NOT NULL,
            value TEXT NOT NULL,
            unit TEXT NOT NULL,
            normal_range TEXT,
            is_abnormal INTEGER DEFAULT 0,
            FOREIGN KEY (record_id) REFERENCES medical_records (id)
        )
    """,
    "chronic_diseases": """
        CREATE TABLE IF NOT EXISTS chronic_diseases (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users (id)
        )
    """,
    "disease_indicators": """
        CREATE TABLE IF NOT EXISTS disease_indicators (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            disease_id TEXT NOT NULL,
            name TEXT NOT NULL,
            unit TEXT NOT NULL,
            normal_range TEXT NOT NULL,
            FOREIGN KEY (disease_id) REFERENCES chronic_diseases (id)
        )
    """,
    "indicator_values": """
        CREATE TABLE IF NOT EXISTS indicator_values (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            indicator_id INTEGER NOT NULL,
            date TEXT NOT NULL,
            value REAL NOT NULL,
            is_abnormal INTEGER DEFAULT 0,
            FOREIGN KEY (indicator_id) REFERENCES disease_indicators (id)
        )
    """,
    "health_reminders": """
        CREATE TABLE IF NOT EXISTS health_reminders (
            id TEXT PRIMARY KEY,
            disease_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            date TEXT NOT NULL,
            type TEXT NOT NULL,
            is_completed INTEGER DEFAULT 0,
            is_repeating INTEGER DEFAULT 0,
            repeat_interval INTEGER,
            FOREIGN KEY (disease_id) REFERENCES chronic_diseases (id)
        )
    """,
}


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or config.DATABASE_URL
    return create_engine(url, connect_args={"check_same_thread": False} if "sqlite" in url else {})
