import unittest
from datetime import timedelta

from studytrackr.core.logs import (
    LogValidationError,
    create_manual_log,
    edit_end_time,
    edit_notes,
    edit_question_count,
    newest_first,
    resolve_goal_title,
)
from studytrackr.core.models import Task

from fakes import at

T = at(2024, 3, 15, 9)


def manual_log(**overrides):
    values = dict(
        subject="physics",
        start_time=T,
        end_time=T + timedelta(seconds=600),
        exam_type="JEE",
        now=at(2024, 3, 15, 12),
    )
    values.update(overrides)
    return create_manual_log(**values)


class ManualLogTests(unittest.TestCase):
    def test_create(self):
        log = manual_log(question_count=8, notes="ray optics")
        self.assertEqual(log.duration, 600)
        self.assertEqual(log.question_count, 8)
        self.assertEqual(log.notes, "ray optics")

    def test_validation(self):
        with self.assertRaises(LogValidationError):
            manual_log(subject="")
        with self.assertRaises(LogValidationError):
            manual_log(end_time=None)
        with self.assertRaises(LogValidationError):
            manual_log(end_time=T)
        with self.assertRaises(LogValidationError):
            manual_log(subject="botany")
        with self.assertRaises(LogValidationError):
            manual_log(question_count=-1)

    def test_goal_title_resolved_from_tasks(self):
        tasks = [Task(id="t1", title="Optics", subject="physics", created_at=T)]
        self.assertEqual(resolve_goal_title(tasks, "t1"), "Optics")
        self.assertIsNone(resolve_goal_title(tasks, "missing"))
        self.assertIsNone(resolve_goal_title(tasks, None))


class LogEditTests(unittest.TestCase):
    def test_end_time_edit_recomputes_duration(self):
        log = manual_log()
        edited = edit_end_time(log, T + timedelta(seconds=900))
        self.assertEqual(edited.duration, 900)
        self.assertEqual(edited.start_time, T)

    def test_end_before_start_is_rejected(self):
        with self.assertRaises(LogValidationError):
            edit_end_time(manual_log(), T - timedelta(seconds=1))

    def test_question_count_and_notes(self):
        log = edit_notes(edit_question_count(manual_log(), 30), "")
        self.assertEqual(log.question_count, 30)
        self.assertIsNone(log.notes)
        with self.assertRaises(LogValidationError):
            edit_question_count(log, -2)

    def test_newest_first(self):
        older = manual_log()
        newer = manual_log(start_time=T + timedelta(hours=1), end_time=T + timedelta(hours=2))
        self.assertEqual(newest_first([older, newer]), [newer, older])


if __name__ == "__main__":
    unittest.main()
