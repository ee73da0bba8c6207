"""Local persistence layer for a family health archive.

Medical records, chronic-disease indicator series and health reminders are
kept in a single SQLite database whose schema is migrated additively on
every start. :class:`HealthStore` is the entry point.
"""

from .store import HealthStore, store
