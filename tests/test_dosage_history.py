import unittest
from datetime import date

from db_case import TempDbTestCase
from dosage_history import (
    get_history,
    medication_on,
    record_dosage_change,
    treatment_weeks,
    weeks_on_current_dosage,
    weeks_on_treatment,
)
from errors import ConsistencyError, NotFoundError, ValidationError
from patients import create_patient, deactivate_patient, get_patient, update_treatment_profile


class DosageHistoryTests(TempDbTestCase):
    def test_new_patient_opens_initial_entry(self):
        patient = self.make_patient()
        history = get_history(self.conn, patient["id"])
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["start_date"], "2024-01-01")
        self.assertIsNone(history[0]["end_date"])
        self.assertEqual(patient["current_dosage_start_date"], "2024-01-01")

    def test_reduction_closes_previous_entry(self):
        patient = self.make_patient()
        record_dosage_change(self.conn, patient["id"], "palbociclib", "100mg", "2024-03-01")

        history = get_history(self.conn, patient["id"])
        self.assertEqual(len(history), 2)
        self.assertEqual(history[0]["end_date"], "2024-02-29")
        self.assertEqual(history[0]["weeks_on_dosage"], 8)
        self.assertEqual(history[1]["dosage"], "100mg")
        self.assertIsNone(history[1]["end_date"])

        refreshed = get_patient(self.conn, patient["id"])
        self.assertEqual(refreshed["dosage"], "100mg")
        self.assertEqual(refreshed["current_dosage_start_date"], "2024-03-01")
        self.assertEqual(refreshed["treatment_start_date"], "2024-01-01")

    def test_weeks_on_current_dosage_after_reduction(self):
        patient = self.make_patient()
        record_dosage_change(self.conn, patient["id"], "palbociclib", "100mg", "2024-03-01")

        weeks = treatment_weeks(self.conn, patient["id"], today=date(2024, 4, 1))
        self.assertEqual(weeks["weeks_on_treatment"], 13)
        self.assertEqual(weeks["weeks_on_current_dosage"], 5)

    def test_max_dosage_counts_whole_treatment(self):
        patient = self.make_patient()
        today = date(2024, 2, 5)
        self.assertEqual(weeks_on_treatment(self.conn, patient["id"], today), 5)
        self.assertEqual(weeks_on_current_dosage(self.conn, patient["id"], today), 5)

    def test_weeks_are_zero_on_start_day(self):
        patient = self.make_patient()
        self.assertEqual(weeks_on_treatment(self.conn, patient["id"], date(2024, 1, 1)), 0)
        self.assertEqual(weeks_on_treatment(self.conn, patient["id"], date(2024, 1, 2)), 1)

    def test_effective_date_must_follow_current_start(self):
        patient = self.make_patient()
        with self.assertRaises(ValidationError):
            record_dosage_change(self.conn, patient["id"], "palbociclib", "100mg", "2024-01-01")
        with self.assertRaises(ValidationError):
            record_dosage_change(self.conn, patient["id"], "palbociclib", "125mg", "2024-02-01")
        self.assertEqual(len(get_history(self.conn, patient["id"])), 1)

    def test_invalid_dosage_writes_nothing(self):
        patient = self.make_patient()
        with self.assertRaises(ValidationError):
            record_dosage_change(self.conn, patient["id"], "palbociclib", "50mg", "2024-02-01")
        history = get_history(self.conn, patient["id"])
        self.assertEqual(len(history), 1)
        self.assertIsNone(history[0]["end_date"])

    def test_adjuvant_palbociclib_cannot_be_registered(self):
        with self.assertRaises(ValidationError):
            create_patient(self.conn, "X", "palbociclib", "125mg", "adjuvant", "2024-01-01")
        count = self.conn.execute("SELECT COUNT(*) FROM patients").fetchone()[0]
        self.assertEqual(count, 0)

    def test_medication_switch_is_tracked_per_day(self):
        patient = self.make_patient()
        record_dosage_change(self.conn, patient["id"], "ribociclib", "600mg", "2024-02-01")
        history = get_history(self.conn, patient["id"])
        self.assertEqual(medication_on(history, date(2024, 1, 31), "?"), "palbociclib")
        self.assertEqual(medication_on(history, date(2024, 2, 1), "?"), "ribociclib")
        self.assertEqual(get_patient(self.conn, patient["id"])["medication"], "ribociclib")

    def test_two_open_entries_is_a_consistency_error(self):
        patient = self.make_patient()
        self.conn.execute(
            "INSERT INTO dosage_history (patient_id, medication, dosage, treatment_setting, start_date)"
            " VALUES (?, 'palbociclib', '100mg', 'metastatic', '2024-02-01')",
            (patient["id"],),
        )
        self.conn.commit()
        with self.assertLogs("dosage_history", level="ERROR"):
            with self.assertRaises(ConsistencyError):
                weeks_on_current_dosage(self.conn, patient["id"], date(2024, 3, 1))

    def test_patient_row_disagreeing_with_history_is_a_consistency_error(self):
        patient = self.make_patient()
        self.conn.execute("UPDATE patients SET dosage = '75mg' WHERE id = ?", (patient["id"],))
        self.conn.commit()
        with self.assertRaises(ConsistencyError):
            weeks_on_current_dosage(self.conn, patient["id"], date(2024, 3, 1))

    def test_unlabeled_stored_dosage_is_rejected(self):
        patient = self.make_patient()
        self.conn.execute("UPDATE patients SET dosage = '999mg' WHERE id = ?", (patient["id"],))
        self.conn.commit()
        with self.assertRaises(ValidationError):
            weeks_on_current_dosage(self.conn, patient["id"], date(2024, 3, 1))

    def test_falls_back_to_current_dosage_start_date(self):
        patient = create_patient(self.conn, "Legacy", "palbociclib", "100mg", "metastatic")
        self.assertEqual(get_history(self.conn, patient["id"]), [])
        self.conn.execute(
            "UPDATE patients SET treatment_start_date = '2024-01-01',"
            " current_dosage_start_date = '2024-03-01' WHERE id = ?",
            (patient["id"],),
        )
        self.conn.commit()
        with self.assertLogs("dosage_history", level="WARNING"):
            weeks = weeks_on_current_dosage(self.conn, patient["id"], date(2024, 4, 1))
        self.assertEqual(weeks, 5)

    def test_no_start_information_gives_zero(self):
        patient = create_patient(self.conn, "New", "ribociclib", "400mg", "metastatic")
        self.assertEqual(weeks_on_treatment(self.conn, patient["id"], date(2024, 4, 1)), 0)
        self.assertEqual(weeks_on_current_dosage(self.conn, patient["id"], date(2024, 4, 1)), 0)

    def test_first_dosage_change_without_history_sets_treatment_start(self):
        patient = create_patient(self.conn, "New", "ribociclib", "600mg", "metastatic")
        record_dosage_change(self.conn, patient["id"], "ribociclib", "400mg", "2024-02-01")
        refreshed = get_patient(self.conn, patient["id"])
        self.assertEqual(refreshed["treatment_start_date"], "2024-02-01")
        self.assertEqual(len(get_history(self.conn, patient["id"])), 1)

    def test_profile_update_opens_history_for_patient_without_one(self):
        patient = create_patient(self.conn, "New", "abemaciclib", "150mg", "adjuvant")
        update_treatment_profile(self.conn, patient["id"], treatment_start_date="2024-01-15")
        history = get_history(self.conn, patient["id"])
        self.assertEqual([h["start_date"] for h in history], ["2024-01-15"])

    def test_profile_start_cannot_precede_history(self):
        patient = self.make_patient()
        with self.assertRaises(ValidationError):
            update_treatment_profile(self.conn, patient["id"], treatment_start_date="2023-12-01")

    def test_profile_start_cannot_follow_current_dosage_start(self):
        patient = self.make_patient(dosage="100mg")
        with self.assertRaises(ValidationError):
            update_treatment_profile(self.conn, patient["id"], treatment_start_date="2024-06-01")
        self.assertEqual(get_patient(self.conn, patient["id"])["treatment_start_date"], "2024-01-01")

        record_dosage_change(self.conn, patient["id"], "palbociclib", "75mg", "2024-03-01")
        with self.assertRaises(ValidationError):
            update_treatment_profile(self.conn, patient["id"], treatment_start_date="2024-03-02")

    def test_current_dosage_weeks_never_exceed_treatment_weeks(self):
        reduced = self.make_patient(name="Reduced")["id"]
        record_dosage_change(self.conn, reduced, "palbociclib", "100mg", "2024-02-01")

        reescalated = self.make_patient(name="Re-escalated", medication="ribociclib", dosage="600mg")["id"]
        record_dosage_change(self.conn, reescalated, "ribociclib", "400mg", "2024-01-15")
        record_dosage_change(self.conn, reescalated, "ribociclib", "600mg", "2024-03-01")

        switched = self.make_patient(name="Switched", medication="abemaciclib", dosage="150mg")["id"]
        record_dosage_change(self.conn, switched, "abemaciclib", "100mg", "2024-02-10")
        record_dosage_change(self.conn, switched, "ribociclib", "400mg", "2024-03-20")

        # Legacy row whose dosage start predates the recorded treatment start
        legacy = create_patient(self.conn, "Legacy", "palbociclib", "75mg", "metastatic")["id"]
        self.conn.execute(
            "UPDATE patients SET treatment_start_date = '2024-03-01',"
            " current_dosage_start_date = '2024-01-01' WHERE id = ?",
            (legacy,),
        )
        self.conn.commit()

        with self.assertLogs("dosage_history", level="WARNING"):
            for today in (date(2024, 3, 1), date(2024, 4, 1), date(2024, 7, 15), date(2025, 1, 1)):
                for patient_id in (reduced, reescalated, switched, legacy):
                    weeks = treatment_weeks(self.conn, patient_id, today)
                    self.assertLessEqual(weeks["weeks_on_current_dosage"], weeks["weeks_on_treatment"])

        self.assertEqual(weeks_on_current_dosage(self.conn, reescalated, date(2024, 4, 1)), 13)
        self.assertEqual(weeks_on_current_dosage(self.conn, legacy, date(2024, 4, 1)), 5)

    def test_inactive_patient_rejects_changes(self):
        patient = self.make_patient()
        deactivate_patient(self.conn, patient["id"])
        with self.assertRaises(NotFoundError):
            record_dosage_change(self.conn, patient["id"], "palbociclib", "100mg", "2024-03-01")


if __name__ == "__main__":
    unittest.main()
