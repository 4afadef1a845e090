import unittest

from studytrackr.core.subjects import JEE, NEET
from studytrackr.core.timer import (
    TimerEngine,
    TimerError,
    default_timer_states,
    resolve_active_subject,
    timer_states_from_dict,
)

from fakes import FixedClock, at


class TimerEngineTests(unittest.TestCase):
    def setUp(self):
        self.clock = FixedClock(at(2024, 3, 15, 23))
        self.states = default_timer_states(JEE)
        self.engine = TimerEngine(self.states, JEE, self.clock)

    def test_overnight_session_produces_one_log(self):
        self.engine.start("mathematics")
        self.clock.now = at(2024, 3, 16, 1, 30)
        log = self.engine.pause("mathematics")

        self.assertEqual(log.subject, "mathematics")
        self.assertEqual(log.duration, 9000)
        self.assertEqual(log.start_time, at(2024, 3, 15, 23))
        self.assertEqual(log.end_time, at(2024, 3, 16, 1, 30))
        state = self.states["mathematics"]
        self.assertFalse(state.is_running)
        self.assertIsNone(state.start_time)
        self.assertEqual(state.elapsed_time, 0)

    def test_pause_carries_questions_and_goal(self):
        self.engine.start("physics", goal_id="t1", goal_title="Kinematics")
        self.engine.increment_questions("physics", 12)
        self.clock.advance(minutes=30)
        log = self.engine.pause("physics")

        self.assertEqual(log.question_count, 12)
        self.assertEqual(log.goal_id, "t1")
        self.assertEqual(log.goal_title, "Kinematics")
        self.assertEqual(self.states["physics"].question_count, 0)

    def test_illegal_transitions(self):
        with self.assertRaises(TimerError):
            self.engine.pause("physics")
        self.engine.start("physics")
        with self.assertRaises(TimerError):
            self.engine.start("physics")

    def test_subject_outside_profile_is_rejected(self):
        with self.assertRaises(TimerError):
            self.engine.start("botany")

    def test_projection_does_not_mutate(self):
        self.engine.start("chemistry")
        self.clock.advance(seconds=90, microseconds=700000)
        projected = self.engine.project("chemistry")

        self.assertEqual(projected.elapsed_time, 90)
        self.assertEqual(self.states["chemistry"].elapsed_time, 0)

    def test_timers_run_concurrently(self):
        self.engine.start("physics")
        self.engine.start("chemistry")
        self.assertEqual(sorted(self.engine.running_subjects), ["chemistry", "physics"])

    def test_question_count_edits(self):
        self.engine.increment_questions("physics")
        self.engine.decrement_questions("physics", 5)
        self.assertEqual(self.states["physics"].question_count, 0)
        self.engine.set_question_count("physics", 7)
        self.assertEqual(self.states["physics"].question_count, 7)
        with self.assertRaises(ValueError):
            self.engine.set_question_count("physics", -1)

    def test_start_keeps_existing_question_count(self):
        self.engine.set_question_count("physics", 4)
        state = self.engine.start("physics")
        self.assertEqual(state.question_count, 4)

    def test_switch_exam_type_keeps_shared_subjects(self):
        self.engine.start("physics")
        states = self.engine.switch_exam_type(NEET)

        self.assertEqual(set(states), {"physics", "chemistry", "botany", "zoology", "classes"})
        self.assertTrue(states["physics"].is_running)
        self.assertEqual(resolve_active_subject("mathematics", NEET), "physics")
        self.assertEqual(resolve_active_subject("chemistry", NEET), "chemistry")


class TimerStateLoadingTests(unittest.TestCase):
    def test_running_state_without_start_loads_idle(self):
        states = timer_states_from_dict(
            {
                "physics": {"isRunning": True, "startTime": "", "elapsedTime": 40, "questionCount": 3},
                "mathematics": {"isRunning": True, "startTime": "2024-03-15T10:00:00+05:30"},
            },
            JEE,
        )
        self.assertFalse(states["physics"].is_running)
        self.assertEqual(states["physics"].question_count, 3)
        self.assertTrue(states["mathematics"].is_running)
        self.assertEqual(states["mathematics"].start_time, at(2024, 3, 15, 10))
        self.assertIn("classes", states)


if __name__ == "__main__":
    unittest.main()
