import unittest
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from taskboard.db import (
    DuplicateEmailError,
    InMemoryDbClient,
    SqlDbClient,
    TaskPriority,
    TaskStatus,
)
from taskboard.policy import Principal, Role


class StoreBehaviour:
    """Shared cases run against every DbClient implementation."""

    def make_db(self):
        raise NotImplementedError

    def setUp(self):
        self.db = self.make_db()
        self.alice = self.db.create_user("Alice", "alice@example.com", "hash-a")
        self.bob = self.db.create_user("Bob", "bob@example.com", "hash-b")
        self.root = self.db.create_user(
            "Root", "root@example.com", "hash-r", role=Role.ADMIN
        )
        self.as_alice = Principal(self.alice.id, Role.USER)
        self.as_bob = Principal(self.bob.id, Role.USER)
        self.as_admin = Principal(self.root.id, Role.ADMIN)

    def test_email_is_unique_case_insensitively(self):
        self.assertEqual(self.db.get_user_by_email("ALICE@example.com").id, self.alice.id)
        with self.assertRaises(DuplicateEmailError):
            self.db.create_user("Other", "Alice@Example.com", "hash")

    def test_update_user_rejects_taken_email(self):
        with self.assertRaises(DuplicateEmailError):
            self.db.update_user(self.bob.id, {"email": "alice@example.com"})
        updated = self.db.update_user(self.bob.id, {"name": "Robert", "role": Role.ADMIN})
        self.assertEqual(updated.name, "Robert")
        self.assertEqual(updated.role, Role.ADMIN)
        self.assertEqual(updated.email, "bob@example.com")

    def test_create_task_defaults(self):
        task = self.db.create_task(self.as_alice, {"title": "Write report"})
        self.assertEqual(task.status, TaskStatus.PENDING)
        self.assertEqual(task.priority, TaskPriority.MEDIUM)
        self.assertEqual(task.user_id, self.alice.id)
        self.assertEqual(task.user_name, "Alice")
        self.assertEqual(task.user_email, "alice@example.com")

    def test_member_only_lists_own_tasks(self):
        self.db.create_task(self.as_alice, {"title": "a1"})
        self.db.create_task(self.as_alice, {"title": "a2"})
        self.db.create_task(self.as_bob, {"title": "b1"})

        alice_tasks = self.db.list_tasks(self.as_alice)
        self.assertEqual(len(alice_tasks), 2)
        self.assertTrue(all(t.user_id == self.alice.id for t in alice_tasks))
        self.assertEqual(len(self.db.list_tasks(self.as_admin)), 3)

    def test_list_newest_first_and_status_filter(self):
        with patch("taskboard.db.time") as mock_time:
            mock_time.time.return_value = 100.0
            older = self.db.create_task(self.as_alice, {"title": "older"})
            mock_time.time.return_value = 200.0
            newer = self.db.create_task(
                self.as_alice, {"title": "newer", "status": TaskStatus.COMPLETED}
            )

        tasks = self.db.list_tasks(self.as_alice)
        self.assertEqual([t.id for t in tasks], [newer.id, older.id])

        completed = self.db.list_tasks(self.as_alice, status=TaskStatus.COMPLETED)
        self.assertEqual([t.id for t in completed], [newer.id])

    def test_get_task_hidden_from_other_members(self):
        task = self.db.create_task(self.as_alice, {"title": "private"})
        self.assertIsNone(self.db.get_task(self.as_bob, task.id))
        self.assertEqual(self.db.get_task(self.as_admin, task.id).id, task.id)
        self.assertIsNone(self.db.get_task(self.as_alice, "missing"))

    def test_partial_update_leaves_other_fields(self):
        task = self.db.create_task(
            self.as_alice,
            {
                "title": "Plan sprint",
                "description": "Pick stories",
                "priority": TaskPriority.HIGH,
            },
        )
        self.db.update_task(self.as_alice, task.id, {"status": TaskStatus.IN_PROGRESS})

        fetched = self.db.get_task(self.as_alice, task.id)
        self.assertEqual(fetched.status, TaskStatus.IN_PROGRESS)
        self.assertEqual(fetched.title, "Plan sprint")
        self.assertEqual(fetched.description, "Pick stories")
        self.assertEqual(fetched.priority, TaskPriority.HIGH)

    def test_update_and_delete_denied_for_non_owner(self):
        task = self.db.create_task(self.as_alice, {"title": "mine"})
        self.assertIsNone(self.db.update_task(self.as_bob, task.id, {"title": "stolen"}))
        self.assertFalse(self.db.delete_task(self.as_bob, task.id))
        self.assertEqual(self.db.get_task(self.as_alice, task.id).title, "mine")

        updated = self.db.update_task(self.as_admin, task.id, {"title": "moderated"})
        self.assertEqual(updated.title, "moderated")
        self.assertEqual(updated.user_id, self.alice.id)
        self.assertTrue(self.db.delete_task(self.as_alice, task.id))
        self.assertIsNone(self.db.get_task(self.as_alice, task.id))

    def test_stats_follow_visibility(self):
        self.db.create_task(self.as_alice, {"title": "a1"})
        self.db.create_task(self.as_alice, {"title": "a2", "status": TaskStatus.COMPLETED})
        self.db.create_task(self.as_bob, {"title": "b1", "status": TaskStatus.IN_PROGRESS})

        self.assertEqual(
            self.db.task_stats(self.as_alice),
            {"total": 2, "pending": 1, "in_progress": 0, "completed": 1},
        )
        self.assertEqual(
            self.db.task_stats(self.as_admin),
            {"total": 3, "pending": 1, "in_progress": 1, "completed": 1},
        )

    def test_delete_user_cascades_to_tasks(self):
        self.db.create_task(self.as_bob, {"title": "b1"})
        self.db.create_task(self.as_bob, {"title": "b2"})
        kept = self.db.create_task(self.as_alice, {"title": "a1"})

        self.assertTrue(self.db.delete_user(self.bob.id))
        self.assertIsNone(self.db.get_user(self.bob.id))
        remaining = self.db.list_tasks(self.as_admin)
        self.assertEqual([t.id for t in remaining], [kept.id])
        self.assertFalse(self.db.delete_user(self.bob.id))


class InMemoryDbClientTests(StoreBehaviour, unittest.TestCase):
    def make_db(self):
        return InMemoryDbClient()


class SqlDbClientTests(StoreBehaviour, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL client logic.
    """

    def make_db(self):
        return SqlDbClient("sqlite+pysqlite:///:memory:")

    def test_other_integrity_errors_are_not_reported_as_duplicates(self):
        with self.assertRaises(IntegrityError):
            self.db.update_user(self.bob.id, {"name": None})
        with self.assertRaises(IntegrityError):
            self.db.create_user(None, "carol@example.com", "hash-c")
        self.assertEqual(self.db.get_user(self.bob.id).name, "Bob")

    def test_list_users_newest_first(self):
        users = self.db.list_users()
        self.assertEqual(len(users), 3)
        created = [u.created_at for u in users]
        self.assertEqual(created, sorted(created, reverse=True))


if __name__ == "__main__":
    unittest.main()
