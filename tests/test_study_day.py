import unittest
from datetime import date, timedelta

from studytrackr.core.study_day import (
    next_study_day_window,
    parse_label,
    study_day_end,
    study_day_label,
    study_day_start,
    study_day_start_for_label,
    study_days_between,
    within_study_day,
)

from fakes import IST, at


class StudyDayTests(unittest.TestCase):
    def test_before_reset_belongs_to_previous_day(self):
        self.assertEqual(study_day_start(at(2024, 3, 16, 1, 30)), at(2024, 3, 15, 4, 30))
        self.assertEqual(study_day_start(at(2024, 3, 16, 4, 29, 59)), at(2024, 3, 15, 4, 30))

    def test_reset_instant_starts_new_day(self):
        self.assertEqual(study_day_start(at(2024, 3, 16, 4, 30)), at(2024, 3, 16, 4, 30))
        self.assertEqual(study_day_start(at(2024, 3, 16, 23, 59)), at(2024, 3, 16, 4, 30))

    def test_end_is_one_millisecond_before_next_start(self):
        end = study_day_end(at(2024, 3, 15, 12))
        self.assertEqual(end, at(2024, 3, 16, 4, 30) - timedelta(milliseconds=1))

    def test_label_is_iso_date_of_start(self):
        self.assertEqual(study_day_label(at(2024, 3, 16, 2)), "2024-03-15")
        self.assertEqual(study_day_label(at(2024, 3, 16, 5)), "2024-03-16")

    def test_within_study_day_is_inclusive(self):
        reference = at(2024, 3, 15, 18)
        self.assertTrue(within_study_day(at(2024, 3, 15, 4, 30), reference))
        self.assertTrue(within_study_day(study_day_end(reference), reference))
        self.assertFalse(within_study_day(at(2024, 3, 16, 4, 30), reference))
        self.assertFalse(within_study_day(at(2024, 3, 15, 4, 29, 59), reference))

    def test_next_window(self):
        start, end = next_study_day_window(at(2024, 3, 16, 2))
        self.assertEqual(start, at(2024, 3, 16, 4, 30))
        self.assertEqual(end, at(2024, 3, 17, 4, 30) - timedelta(milliseconds=1))

    def test_parse_label_accepts_legacy_format(self):
        self.assertEqual(parse_label("2024-03-15"), date(2024, 3, 15))
        self.assertEqual(parse_label("Fri Mar 15 2024"), date(2024, 3, 15))
        with self.assertRaises(ValueError):
            parse_label("yesterday")

    def test_start_for_label(self):
        self.assertEqual(study_day_start_for_label("Fri Mar 15 2024", IST), at(2024, 3, 15, 4, 30))

    def test_days_between_uses_study_days(self):
        # 01:00 on the 17th is still the study day of the 16th.
        self.assertEqual(study_days_between("2024-03-15", at(2024, 3, 17, 1)), 1)
        self.assertEqual(study_days_between("2024-03-15", at(2024, 3, 17, 5)), 2)
        self.assertEqual(study_days_between("2024-03-15", at(2024, 3, 15, 23)), 0)


if __name__ == "__main__":
    unittest.main()
