import json
import os
import tempfile
import unittest

from studytrackr.core.models import QuestionGoal, StreakData, Task
from studytrackr.services.local_store import LocalStore
from studytrackr.state.study_state import (
    EXAM_SETTINGS_KEY,
    QUESTION_GOAL_KEY,
    STREAK_DATA_KEY,
    TASKS_KEY,
    TIME_LOGS_KEY,
    StudyState,
)

from fakes import at


class LocalStoreTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = LocalStore(os.path.join(self.tmp.name, "nested", "local.db"))

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def test_empty_store_loads_defaults(self):
        state = self.store.load_state()
        self.assertEqual(state.tasks, [])
        self.assertEqual(state.question_goal.daily, 80)
        self.assertEqual(state.exam_settings.exam_type, "JEE")
        self.assertEqual(state.streak_data, StreakData())
        self.assertEqual(set(state.timer_states), {"physics", "chemistry", "mathematics", "classes"})

    def test_save_and_load(self):
        state = StudyState(
            tasks=[Task(id="t1", title="Optics", subject="physics", created_at=at(2024, 3, 15, 8))],
            question_goal=QuestionGoal(daily=120),
            streak_data=StreakData(current_streak=2, longest_streak=3, last_study_date="2024-03-14"),
        )
        self.store.save_state(state)
        loaded = self.store.load_state()

        self.assertEqual(loaded.tasks, state.tasks)
        self.assertEqual(loaded.question_goal.daily, 120)
        self.assertEqual(loaded.streak_data, state.streak_data)
        self.assertEqual(json.loads(self.store.get(QUESTION_GOAL_KEY)), {"daily": 120})

    def test_malformed_key_falls_back_alone(self):
        self.store.set(TASKS_KEY, "{not json")
        self.store.set(TIME_LOGS_KEY, json.dumps([{"subject": "physics"}]))
        self.store.set(QUESTION_GOAL_KEY, json.dumps({"daily": 50}))

        with self.assertLogs("studytrackr.services.local_store", level="WARNING") as logs:
            state = self.store.load_state()

        self.assertEqual(state.tasks, [])
        self.assertEqual(state.time_logs, [])
        self.assertEqual(state.question_goal.daily, 50)
        self.assertEqual(len(logs.records), 2)

    def test_neet_profile_shapes_timers(self):
        self.store.set(EXAM_SETTINGS_KEY, json.dumps({"examType": "NEET"}))
        state = self.store.load_state()
        self.assertIn("botany", state.timer_states)
        self.assertNotIn("mathematics", state.timer_states)

    def test_legacy_streak_label_is_normalized(self):
        self.store.set(STREAK_DATA_KEY, json.dumps({"currentStreak": 1, "longestStreak": 1, "lastStudyDate": "Fri Mar 15 2024"}))
        self.assertEqual(self.store.load_state().streak_data.last_study_date, "2024-03-15")


if __name__ == "__main__":
    unittest.main()
