import sqlite3
import unittest
from datetime import date
from unittest import mock

from db_case import TempDbTestCase
from dosage_history import record_dosage_change
from errors import CycleRangeError, NotFoundError, ValidationError
import overrides
from overrides import (
    bulk_set_therapy_pause_week,
    delete_override,
    get_override,
    get_schedule_state,
    list_overrides,
    set_override,
    toggle_override,
    validate_range,
)
from patients import deactivate_patient


class OverrideStoreTests(TempDbTestCase):
    def setUp(self):
        super().setUp()
        self.patient_id = self.make_patient()["id"]

    def _states(self, start, end):
        return [d["state"] for d in get_schedule_state(self.conn, self.patient_id, start, end)]

    def test_canonical_schedule(self):
        self.assertEqual(self._states("2024-01-20", "2024-01-23"), ["take", "take", "pause", "pause"])

    def test_override_wins_and_delete_reverts(self):
        set_override(self.conn, self.patient_id, "2024-01-22", "taken", "patient asked to continue")
        days = get_schedule_state(self.conn, self.patient_id, "2024-01-22", "2024-01-22")
        self.assertEqual(days[0]["state"], "take")
        self.assertEqual(days[0]["source"], "override")
        self.assertEqual(days[0]["notes"], "patient asked to continue")

        delete_override(self.conn, self.patient_id, "2024-01-22")
        days = get_schedule_state(self.conn, self.patient_id, "2024-01-22", "2024-01-22")
        self.assertEqual(days[0]["state"], "pause")
        self.assertEqual(days[0]["source"], "canonical")

        with self.assertRaises(NotFoundError):
            delete_override(self.conn, self.patient_id, "2024-01-22")

    def test_set_override_replaces_existing(self):
        set_override(self.conn, self.patient_id, "2024-01-05", "pause", "nausea")
        set_override(self.conn, self.patient_id, "2024-01-05", "missed")
        event = get_override(self.conn, self.patient_id, "2024-01-05")
        self.assertEqual(event["event_type"], "missed")
        self.assertEqual(event["notes"], "nausea")
        self.assertEqual(len(list_overrides(self.conn, self.patient_id)), 1)

    def test_invalid_event_type(self):
        with self.assertRaises(ValidationError):
            set_override(self.conn, self.patient_id, "2024-01-05", "skipped")
        with self.assertRaises(ValidationError):
            set_override(self.conn, self.patient_id, "05/01/2024", "pause")

    def test_toggle_cycles_through_states(self):
        seen = []
        for _ in range(4):
            event = toggle_override(self.conn, self.patient_id, "2024-01-10")
            seen.append(event["event_type"] if event else None)
        self.assertEqual(seen, ["taken", "pause", "missed", None])
        self.assertIsNone(get_override(self.conn, self.patient_id, "2024-01-10"))

    def test_therapy_pause_is_idempotent(self):
        first = bulk_set_therapy_pause_week(self.conn, self.patient_id, "2024-02-05", cycles=1)
        self.assertEqual(first["planned"], 35)
        self.assertEqual(first["written"], 35)
        self.assertEqual(first["end_date"], "2024-03-10")

        retry = bulk_set_therapy_pause_week(self.conn, self.patient_id, "2024-02-05", cycles=1)
        self.assertEqual(retry["written"], 0)
        self.assertEqual(retry["unchanged"], 35)
        self.assertEqual(len(list_overrides(self.conn, self.patient_id)), 35)

        states = self._states("2024-02-05", "2024-02-13")
        self.assertEqual(states, ["pause"] * 7 + ["take", "take"])

    def test_therapy_pause_failure_rolls_back_and_retry_succeeds(self):
        real_upsert = overrides._upsert
        calls = {"n": 0}

        def failing_upsert(*args):
            calls["n"] += 1
            if calls["n"] == 12:
                raise sqlite3.OperationalError("database is locked")
            return real_upsert(*args)

        set_override(self.conn, self.patient_id, "2024-02-08", "missed", "already recorded")
        with mock.patch("overrides._upsert", side_effect=failing_upsert):
            with self.assertRaises(sqlite3.OperationalError):
                bulk_set_therapy_pause_week(self.conn, self.patient_id, "2024-02-05", cycles=1)

        events = list_overrides(self.conn, self.patient_id)
        self.assertEqual([(e["date"], e["event_type"]) for e in events], [("2024-02-08", "missed")])
        duplicates = self.conn.execute(
            "SELECT date FROM calendar_events WHERE patient_id = ? GROUP BY date HAVING COUNT(*) > 1",
            (self.patient_id,),
        ).fetchall()
        self.assertEqual(duplicates, [])

        retry = bulk_set_therapy_pause_week(self.conn, self.patient_id, "2024-02-05", cycles=1)
        self.assertEqual(retry["written"], 35)
        self.assertEqual(len(list_overrides(self.conn, self.patient_id)), 35)
        self.assertEqual(get_override(self.conn, self.patient_id, "2024-02-08")["event_type"], "pause")

    def test_therapy_pause_continuous_drug(self):
        patient = self.make_patient(medication="abemaciclib", dosage="150mg")
        summary = bulk_set_therapy_pause_week(self.conn, patient["id"], date(2024, 3, 4))
        self.assertEqual(summary["planned"], 7)
        self.assertEqual(summary["end_date"], "2024-03-10")

    def test_therapy_pause_requires_active_patient(self):
        deactivate_patient(self.conn, self.patient_id)
        with self.assertRaises(NotFoundError):
            bulk_set_therapy_pause_week(self.conn, self.patient_id, "2024-02-05")
        self.assertEqual(list_overrides(self.conn, self.patient_id), [])

    def test_schedule_follows_medication_history(self):
        record_dosage_change(self.conn, self.patient_id, "abemaciclib", "150mg", "2024-02-01")
        # 2024-01-25 is a pause day for palbociclib, 2024-02-25 would be one too
        self.assertEqual(self._states("2024-01-25", "2024-01-25"), ["pause"])
        self.assertEqual(self._states("2024-02-25", "2024-02-25"), ["take"])

    def test_range_validation(self):
        with self.assertRaises(ValidationError):
            validate_range("2024-02-01", "2024-01-31")
        with self.assertRaises(ValidationError):
            validate_range("2024-01-01", "2025-06-01")
        with self.assertRaises(CycleRangeError):
            validate_range("2023-12-25", "2024-01-05")
        self.assertEqual(validate_range("2024-01-01", "2024-01-01"), (date(2024, 1, 1), date(2024, 1, 1)))


if __name__ == "__main__":
    unittest.main()
