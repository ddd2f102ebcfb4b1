import unittest
from datetime import date, timedelta

from cycle import (
    MISSED,
    PAUSE,
    TAKE,
    cycle_day,
    date_range,
    resolve_day,
    schedule_state,
    therapy_pause_plan,
)
from dosing import max_dosage, valid_dosages, validate_dosage
from errors import CycleRangeError, ValidationError


class CycleCalculatorTests(unittest.TestCase):
    def test_cycle_day_wraps_every_28_days(self):
        self.assertEqual(cycle_day(date(2024, 1, 1)), 0)
        self.assertEqual(cycle_day(date(2024, 1, 22)), 21)
        self.assertEqual(cycle_day(date(2024, 1, 28)), 27)
        self.assertEqual(cycle_day(date(2024, 1, 29)), 0)

    def test_dates_before_epoch_are_rejected(self):
        with self.assertRaises(CycleRangeError):
            cycle_day(date(2023, 12, 31))
        # Still a plain validation failure for callers
        with self.assertRaises(ValidationError):
            schedule_state("palbociclib", date(2023, 12, 31))

    def test_cyclic_drugs_take_three_weeks_then_pause_one(self):
        for medication in ("palbociclib", "ribociclib"):
            self.assertEqual(schedule_state(medication, date(2024, 1, 21)), TAKE)
            self.assertEqual(schedule_state(medication, date(2024, 1, 22)), PAUSE)
            self.assertEqual(schedule_state(medication, date(2024, 1, 28)), PAUSE)
            self.assertEqual(schedule_state(medication, date(2024, 1, 29)), TAKE)

    def test_every_cycle_is_21_take_then_7_pause(self):
        start = date(2024, 1, 1)
        for medication in ("palbociclib", "ribociclib"):
            for cycle in range(6):
                anchor = start + timedelta(days=28 * cycle)
                states = [schedule_state(medication, anchor + timedelta(days=i)) for i in range(28)]
                self.assertEqual(states.count(TAKE), 21)
                self.assertEqual(states[21:], [PAUSE] * 7)
                self.assertEqual(states[:21], [TAKE] * 21)

    def test_abemaciclib_is_taken_every_day(self):
        for day in date_range(date(2024, 1, 1), date(2024, 3, 1)):
            self.assertEqual(schedule_state("abemaciclib", day), TAKE)

    def test_unknown_medication_defaults_to_pause_with_warning(self):
        with self.assertLogs("cycle", level="WARNING") as logs:
            self.assertEqual(schedule_state("tamoxifen", date(2024, 1, 2)), PAUSE)
        self.assertIn("tamoxifen", logs.output[0])

    def test_override_replaces_canonical_state(self):
        day = date(2024, 1, 23)
        canonical = resolve_day("palbociclib", day)
        self.assertEqual(canonical["state"], PAUSE)
        self.assertEqual(canonical["source"], "canonical")

        overridden = resolve_day("palbociclib", day, {"event_type": "taken", "notes": "extra week"})
        self.assertEqual(overridden["state"], TAKE)
        self.assertEqual(overridden["source"], "override")
        self.assertEqual(overridden["notes"], "extra week")

        missed = resolve_day("abemaciclib", day, {"event_type": "missed"})
        self.assertEqual(missed["state"], MISSED)

    def test_therapy_pause_plan_continuous_drug_is_one_week(self):
        plan = therapy_pause_plan("abemaciclib", date(2024, 2, 5), 3)
        self.assertEqual(len(plan), 7)
        self.assertTrue(all(event == "pause" for _, event in plan))

    def test_therapy_pause_plan_regenerates_following_cycles(self):
        start = date(2024, 2, 5)
        plan = therapy_pause_plan("palbociclib", start, 1)
        self.assertEqual(len(plan), 7 + 28)
        self.assertEqual(plan[6], (start + timedelta(days=6), "pause"))
        self.assertEqual(plan[7], (start + timedelta(days=7), "taken"))
        self.assertEqual(plan[7 + 20][1], "taken")
        self.assertEqual(plan[7 + 21][1], "pause")
        self.assertEqual(plan[-1][0], start + timedelta(days=34))

    def test_date_range_is_inclusive(self):
        days = list(date_range(date(2024, 2, 28), date(2024, 3, 1)))
        self.assertEqual(days, [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)])
        self.assertEqual(list(date_range(date(2024, 3, 2), date(2024, 3, 1))), [])


class DosageTableTests(unittest.TestCase):
    def test_max_dosage_is_first_entry(self):
        self.assertEqual(max_dosage("metastatic", "ribociclib"), "600mg")
        self.assertEqual(max_dosage("adjuvant", "ribociclib"), "400mg")
        self.assertIsNone(max_dosage("adjuvant", "palbociclib"))

    def test_adjuvant_palbociclib_has_no_dosage(self):
        self.assertEqual(valid_dosages("adjuvant", "palbociclib"), [])
        with self.assertRaises(ValidationError) as ctx:
            validate_dosage("adjuvant", "palbociclib", "125mg")
        self.assertIn("no valid dosage", str(ctx.exception))

    def test_unknown_values_are_rejected(self):
        with self.assertRaises(ValidationError):
            validate_dosage("metastatic", "palbociclib", "150mg")
        with self.assertRaises(ValidationError):
            validate_dosage("metastatic", "letrozole", "2.5mg")
        with self.assertRaises(ValidationError):
            validate_dosage("neoadjuvant", "abemaciclib", "150mg")


if __name__ == "__main__":
    unittest.main()
