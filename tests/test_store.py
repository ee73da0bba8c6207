"""
Tests for the record store operations.
"""

import pytest
from pydantic import ValidationError

from mediarchive.exceptions import QueryError, StoreNotInitializedError
from mediarchive.schemas import MedicalRecordCreate, UserCreate
from mediarchive.store import HealthStore


def count_rows(store, table_name, where="", params=()):
    with store.engine.connect() as conn:
        return conn.exec_driver_sql(f"SELECT COUNT(*) FROM {table_name} {where}", params).scalar()


def make_record(record_id, user_id="u1", record_type="blood", date="2024-01-01", **extra):
    return MedicalRecordCreate(
        id=record_id,
        user_id=user_id,
        title=f"Record {record_id}",
        hospital="City Hospital",
        type=record_type,
        date=date,
        **extra,
    )


class TestLifecycle:
    def test_operations_before_init_raise(self, database_url):
        store = HealthStore(database_url)

        with pytest.raises(StoreNotInitializedError):
            store.get_users()
        with pytest.raises(StoreNotInitializedError):
            store.add_medical_record(make_record("r1"))

    def test_init_is_idempotent(self, health_store):
        engine = health_store.engine

        report = health_store.init()

        assert health_store.engine is engine
        assert report is health_store.migration_report
        assert report.ok

    def test_close_returns_to_uninitialized(self, database_url):
        store = HealthStore(database_url)
        store.init()
        store.close()

        assert not store.initialized
        with pytest.raises(StoreNotInitializedError):
            store.get_statistics()


class TestUsers:
    def test_add_and_list_users_in_creation_order(self, health_store, sample_user):
        health_store.add_user(sample_user)
        health_store.add_user(UserCreate(id="u2", name="Bob", relationship="child", color="#000"))

        users = health_store.get_users()

        assert [user.id for user in users] == ["u1", "u2"]
        assert users[0].avatar is None
        assert users[1].relationship == "child"

    def test_update_user(self, health_store, sample_user):
        health_store.add_user(sample_user)

        updated = health_store.update_user({**sample_user, "name": "Alicia", "avatar": "a.png"})

        assert updated
        user = health_store.get_users()[0]
        assert user.name == "Alicia"
        assert user.avatar == "a.png"

    def test_update_unknown_user_reports_nothing_changed(self, health_store, sample_user):
        assert not health_store.update_user(sample_user)

    def test_delete_user_keeps_dependents_by_default(self, health_store, sample_user, sample_record):
        health_store.add_user(sample_user)
        health_store.add_medical_record(sample_record)

        health_store.delete_user("u1")

        assert health_store.get_users() == []
        assert [record.id for record in health_store.get_medical_records("u1")] == ["r1"]

    def test_delete_user_with_cascade(self, health_store, sample_user, sample_record, sample_disease):
        health_store.add_user(sample_user)
        health_store.add_medical_record(sample_record)
        health_store.add_chronic_disease(sample_disease)

        health_store.delete_user("u1", cascade=True)

        for table_name in ("users", "medical_records", "key_indicators", "chronic_diseases",
                           "disease_indicators", "indicator_values", "health_reminders"):
            assert count_rows(health_store, table_name) == 0, table_name

    def test_legacy_user_without_relationship(self, health_store):
        with health_store.engine.begin() as conn:
            conn.exec_driver_sql(
                "INSERT INTO users (id, name, relationship, color) VALUES ('old', 'Grandpa', '', '')"
            )

        assert [(user.id, user.relationship) for user in health_store.get_users()] == [("old", "")]


class TestMedicalRecords:
    def test_round_trip(self, health_store, sample_record):
        health_store.add_medical_record(sample_record)

        records = health_store.get_medical_records("u1")

        assert len(records) == 1
        record = records[0]
        assert record.id == "r1"
        assert record.is_abnormal is False
        assert record.created_at
        assert len(record.key_indicators) == 1
        assert record.key_indicators[0].name == "WBC"
        assert record.key_indicators[0].value == "6.5"
        assert record.key_indicators[0].unit == "10^9/L"

    def test_indicator_flags_survive_the_read(self, health_store):
        health_store.add_medical_record(
            make_record(
                "r1",
                key_indicators=[
                    {"name": "HGB", "value": "98", "unit": "g/L", "normal_range": "115-150", "is_abnormal": True},
                    {"name": "PLT, count", "value": "210 x", "unit": "10^9/L"},
                ],
            )
        )

        first, second = health_store.get_medical_records()[0].key_indicators

        assert first.is_abnormal is True
        assert first.normal_range == "115-150"
        # delimiters in names and values are stored verbatim
        assert second.name == "PLT, count"
        assert second.value == "210 x"

    def test_saving_again_replaces_all_indicators(self, health_store, sample_record):
        health_store.add_medical_record(sample_record)
        health_store.add_medical_record(
            {
                **sample_record,
                "keyIndicators": [
                    {"name": "RBC", "value": "4.8", "unit": "10^12/L"},
                    {"name": "HGB", "value": "140", "unit": "g/L"},
                ],
            }
        )

        indicators = health_store.get_key_indicators("r1")

        assert [indicator.name for indicator in indicators] == ["RBC", "HGB"]
        assert count_rows(health_store, "medical_records") == 1

    def test_saving_without_indicator_list_keeps_existing(self, health_store, sample_record):
        health_store.add_medical_record(sample_record)
        health_store.add_medical_record({**sample_record, "keyIndicators": None, "title": "Renamed"})

        record = health_store.get_medical_record("r1")

        assert record.title == "Renamed"
        assert [indicator.name for indicator in record.key_indicators] == ["WBC"]

    def test_empty_indicator_list_clears_indicators(self, health_store, sample_record):
        health_store.add_medical_record(sample_record)
        health_store.add_medical_record({**sample_record, "keyIndicators": []})

        assert health_store.get_key_indicators("r1") == []

    def test_delete_cascades_to_indicators(self, health_store, sample_record):
        health_store.add_medical_record(sample_record)

        health_store.delete_medical_record("r1")

        assert health_store.get_medical_records() == []
        assert health_store.get_key_indicators("r1") == []
        assert count_rows(health_store, "key_indicators") == 0

    def test_filters_are_combined_and_sorted_by_date(self, health_store):
        health_store.add_medical_record(make_record("r1", date="2024-01-01"))
        health_store.add_medical_record(make_record("r2", date="2024-03-01"))
        health_store.add_medical_record(make_record("r3", record_type="imaging", date="2024-02-01"))
        health_store.add_medical_record(make_record("r4", user_id="u2", date="2024-04-01"))

        records = health_store.get_medical_records("u1", "blood", None)

        assert [record.id for record in records] == ["r2", "r1"]
        assert [record.id for record in health_store.get_medical_records()] == ["r4", "r2", "r3", "r1"]
        assert [record.id for record in health_store.get_medical_records(record_type="imaging")] == ["r3"]

    def test_records_by_disease(self, health_store):
        health_store.add_medical_record(make_record("r1", disease_id="d1"))
        health_store.add_medical_record(make_record("r2"))

        records = health_store.get_medical_records_by_disease("d1")

        assert [record.id for record in records] == ["r1"]

    def test_get_unknown_record(self, health_store):
        assert health_store.get_medical_record("missing") is None

    def test_failed_write_rolls_back_and_raises_query_error(self, health_store, sample_record):
        with health_store.engine.begin() as conn:
            conn.exec_driver_sql(
                "CREATE TRIGGER reject_indicators BEFORE INSERT ON key_indicators "
                "BEGIN SELECT RAISE(ABORT, 'indicator rejected'); END"
            )

        with pytest.raises(QueryError) as excinfo:
            health_store.add_medical_record(sample_record)

        assert "indicator rejected" in excinfo.value.detail[0]
        assert count_rows(health_store, "medical_records") == 0

    def test_legacy_rows_are_still_listed(self, health_store, sample_record):
        health_store.add_medical_record(sample_record)
        with health_store.engine.begin() as conn:
            conn.exec_driver_sql(
                "INSERT INTO medical_records (id, user_id, title, hospital, type, date) "
                "VALUES ('legacy', 'u1', 'Old scan', 'H', '', '2024/1/5')"
            )

        records = health_store.get_medical_records("u1")

        assert {record.id for record in records} == {"r1", "legacy"}
        legacy = health_store.get_medical_record("legacy")
        assert (legacy.type, legacy.date) == ("", "2024/1/5")

    def test_writes_still_validate_dates(self, health_store, sample_record):
        with pytest.raises(ValidationError):
            health_store.add_medical_record({**sample_record, "date": "2024/1/5"})

        assert count_rows(health_store, "medical_records") == 0


class TestChronicDiseases:
    def test_add_and_read_back(self, health_store, sample_disease):
        health_store.add_chronic_disease(sample_disease)

        diseases = health_store.get_chronic_diseases("u1")

        assert len(diseases) == 1
        disease = diseases[0]
        assert disease.type == "hypertension"
        indicator = disease.indicators[0]
        assert indicator.normal_range == "90-140"
        # newest value first
        assert [value.date for value in indicator.values] == ["2024-02-15", "2024-01-15"]
        assert indicator.values[0].value == 150.0
        assert indicator.values[0].is_abnormal is True
        reminder = disease.reminders[0]
        assert reminder.is_repeating is True
        assert reminder.repeat_interval == 1
        assert reminder.is_completed is False

    def test_values_are_linked_to_their_own_indicator(self, health_store, sample_disease):
        sample_disease["indicators"].append(
            {"name": "Diastolic", "unit": "mmHg", "normalRange": "60-90",
             "values": [{"date": "2024-01-15", "value": 85}]}
        )
        health_store.add_chronic_disease(sample_disease)

        systolic, diastolic = health_store.get_chronic_diseases()[0].indicators

        assert len(systolic.values) == 2
        assert [value.value for value in diastolic.values] == [85.0]

    def test_filter_by_user(self, health_store, sample_disease):
        health_store.add_chronic_disease(sample_disease)
        health_store.add_chronic_disease({"id": "d2", "userId": "u2", "name": "Asthma", "type": "asthma"})

        assert [disease.id for disease in health_store.get_chronic_diseases("u2")] == ["d2"]
        assert len(health_store.get_chronic_diseases()) == 2

    def test_failed_step_rolls_back_the_whole_disease(self, health_store, sample_disease):
        with health_store.engine.begin() as conn:
            conn.exec_driver_sql(
                "CREATE TRIGGER reject_reminders BEFORE INSERT ON health_reminders "
                "BEGIN SELECT RAISE(ABORT, 'reminder rejected'); END"
            )

        with pytest.raises(QueryError):
            health_store.add_chronic_disease(sample_disease)

        for table_name in ("chronic_diseases", "disease_indicators", "indicator_values", "health_reminders"):
            assert count_rows(health_store, table_name) == 0, table_name

    def test_delete_disease_cascades_and_unlinks_records(self, health_store, sample_disease):
        health_store.add_chronic_disease(sample_disease)
        health_store.add_medical_record(make_record("r1", disease_id="d1"))

        health_store.delete_chronic_disease("d1")

        assert health_store.get_chronic_diseases() == []
        for table_name in ("disease_indicators", "indicator_values", "health_reminders"):
            assert count_rows(health_store, table_name) == 0, table_name
        assert health_store.get_medical_record("r1").disease_id is None

    def test_complete_reminder(self, health_store, sample_disease):
        health_store.add_chronic_disease(sample_disease)

        assert health_store.set_reminder_completed("rem1")
        assert not health_store.set_reminder_completed("missing")
        assert health_store.get_chronic_diseases()[0].reminders[0].is_completed is True

    def test_legacy_reminder_is_still_listed(self, health_store, sample_disease):
        health_store.add_chronic_disease(sample_disease)
        with health_store.engine.begin() as conn:
            conn.exec_driver_sql(
                "INSERT INTO health_reminders (id, disease_id, title, description, date, type, repeat_interval) "
                "VALUES ('old', 'd1', 'Checkup', '', '2023-12-01', '', 0)"
            )

        reminders = health_store.get_chronic_diseases()[0].reminders

        assert [(reminder.id, reminder.repeat_interval) for reminder in reminders] == [("old", 0), ("rem1", 1)]


class TestClearAllData:
    def test_empties_every_table(self, health_store, sample_user, sample_record, sample_disease):
        health_store.add_user(sample_user)
        health_store.add_medical_record(sample_record)
        health_store.add_chronic_disease(sample_disease)

        health_store.clear_all_data()

        assert health_store.get_users() == []
        assert health_store.get_medical_records() == []
        assert health_store.get_chronic_diseases() == []
        assert count_rows(health_store, "indicator_values") == 0
