import unittest
from datetime import date

from studytrackr.core.models import SubjectScore
from studytrackr.core.results import (
    build_test_result,
    default_score_sheet,
    edit_test_result,
    results_for_exam,
    results_summary,
    subject_analytics,
)

from fakes import at


def record(name, day, physics_marks, exam_type="JEE"):
    return build_test_result(
        exam_type=exam_type,
        test_name=name,
        test_date=day,
        subjects={"physics": SubjectScore(attempted=20, correct=physics_marks // 4, marks=physics_marks, total_marks=100)},
        now=at(2024, 3, 15, 9),
    )


class ResultTests(unittest.TestCase):
    def test_default_score_sheet(self):
        jee = default_score_sheet("JEE")
        self.assertEqual(set(jee), {"physics", "chemistry", "mathematics"})
        self.assertEqual(jee["physics"].total_marks, 100)
        neet = default_score_sheet("NEET")
        self.assertNotIn("classes", neet)
        self.assertEqual(neet["zoology"].total_marks, 180)

    def test_validation(self):
        with self.assertRaises(ValueError):
            record("", date(2024, 3, 1), 40)
        with self.assertRaises(ValueError):
            build_test_result(
                exam_type="JEE",
                test_name="Bad",
                test_date=date(2024, 3, 1),
                subjects={"physics": SubjectScore(attempted=5, correct=6)},
                now=at(2024, 3, 15, 9),
            )

    def test_filtered_to_profile_newest_first(self):
        first = record("One", date(2024, 3, 1), 40)
        second = record("Two", date(2024, 3, 8), 60)
        neet = record("N", date(2024, 3, 9), 60, exam_type="NEET")
        self.assertEqual(results_for_exam([first, neet, second], "JEE"), [second, first])

    def test_subject_analytics(self):
        results = [record("Two", date(2024, 3, 8), 60), record("One", date(2024, 3, 1), 40)]
        analytics = subject_analytics(results, "physics")

        self.assertEqual(analytics.total_tests, 2)
        self.assertEqual(analytics.average_score, 50)
        self.assertEqual(analytics.average_score_percentage, 50)
        self.assertEqual(analytics.average_accuracy, 62.5)
        self.assertEqual([point["date"] for point in analytics.points], ["2024-03-01", "2024-03-08"])
        self.assertEqual(subject_analytics(results, "chemistry").total_tests, 0)

    def test_summary(self):
        results = [record("One", date(2024, 3, 1), 40), record("Two", date(2024, 3, 8), 70)]
        self.assertEqual(results_summary(results), {"total_tests": 2, "average_percentage": 55.0, "best_percentage": 70.0})
        self.assertEqual(results_summary([])["total_tests"], 0)

    def test_edit_keeps_identity(self):
        original = record("One", date(2024, 3, 1), 40)
        edited = edit_test_result(
            original,
            test_name="One (rechecked)",
            test_date=date(2024, 3, 2),
            subjects={"physics": SubjectScore(attempted=20, correct=12, marks=48, total_marks=100)},
        )
        self.assertEqual(edited.id, original.id)
        self.assertEqual(edited.exam_type, "JEE")
        self.assertEqual(edited.total_marks, 48)


if __name__ == "__main__":
    unittest.main()
