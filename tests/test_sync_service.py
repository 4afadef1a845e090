import unittest

from studytrackr.core.models import QuestionGoal, StreakData
from studytrackr.services.sync_service import SyncService, SyncServiceError, from_remote_record, to_remote_record
from studytrackr.state.study_state import StudyState

from fakes import FixedClock, InMemoryRemoteStore, at


class RemoteRecordTests(unittest.TestCase):
    def test_record_fields(self):
        record = to_remote_record(StudyState(question_goal=QuestionGoal(daily=90)), at(2024, 3, 15, 9))
        self.assertEqual(
            set(record),
            {
                "tasks",
                "time_logs",
                "question_goal",
                "exam_settings",
                "streak_data",
                "timer_states",
                "test_results",
                "updated_at",
            },
        )
        self.assertEqual(record["question_goal"], {"daily": 90})
        self.assertEqual(record["updated_at"], "2024-03-15T09:00:00+05:30")

    def test_bad_remote_field_falls_back(self):
        with self.assertLogs("studytrackr.services.sync_service", level="WARNING"):
            state = from_remote_record({"tasks": [{"title": "no id"}], "question_goal": {"daily": 40}})
        self.assertEqual(state.tasks, [])
        self.assertEqual(state.question_goal.daily, 40)


class ReconcileTests(unittest.TestCase):
    def setUp(self):
        self.remote = InMemoryRemoteStore()
        self.sync = SyncService(self.remote, FixedClock(at(2024, 3, 15, 9)))
        self.local = StudyState(
            question_goal=QuestionGoal(daily=120),
            streak_data=StreakData(current_streak=3, longest_streak=3, last_study_date="2024-03-14"),
        )

    def test_empty_remote_receives_local_state(self):
        result = self.sync.reconcile("u1", self.local)

        self.assertTrue(result.migrated)
        self.assertIs(result.state, self.local)
        self.assertEqual(from_remote_record(self.remote.records["u1"]).to_bundle(), self.local.to_bundle())

    def test_existing_remote_wins(self):
        self.remote.records["u1"] = to_remote_record(StudyState(question_goal=QuestionGoal(daily=30)), at(2024, 3, 1))
        result = self.sync.reconcile("u1", self.local)

        self.assertFalse(result.migrated)
        self.assertEqual(result.state.question_goal.daily, 30)
        self.assertEqual(self.remote.upserts, [])

    def test_download_failure_raises(self):
        self.remote.fail_fetch = True
        with self.assertRaises(SyncServiceError):
            self.sync.reconcile("u1", self.local)

    def test_failed_migration_keeps_local_state(self):
        self.remote.fail_upsert = True
        result = self.sync.reconcile("u1", self.local)

        self.assertFalse(result.migrated)
        self.assertIs(result.state, self.local)
        self.assertIn("Upload failed", result.upload_error)

    def test_upload_returns_timestamp(self):
        self.assertEqual(self.sync.upload_user_data("u1", self.local), at(2024, 3, 15, 9))

    def test_upload_record_sends_encoded_record(self):
        record = to_remote_record(self.local, at(2024, 3, 15, 9))
        self.sync.upload_record("u1", record)
        self.assertEqual(self.remote.records["u1"], record)

        self.remote.fail_upsert = True
        with self.assertRaises(SyncServiceError):
            self.sync.upload_record("u1", record)


if __name__ == "__main__":
    unittest.main()
