import unittest

from scripts.create_admin import create_admin
from taskboard.db import DuplicateEmailError, InMemoryDbClient
from taskboard.policy import Role
from taskboard.security import build_password_context


class CreateAdminTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_creates_new_administrator(self):
        user_id = create_admin(
            self.db,
            email="root@example.com",
            name="Root",
            password="secret1",
            bcrypt_rounds=4,
        )
        user = self.db.get_user(user_id)
        self.assertEqual(user.role, Role.ADMIN)
        self.assertNotEqual(user.password_hash, "secret1")
        self.assertTrue(build_password_context(4).verify("secret1", user.password_hash))

    def test_promotes_existing_user_only_when_asked(self):
        member = self.db.create_user("Member", "member@example.com", "hash")
        with self.assertRaises(DuplicateEmailError):
            create_admin(self.db, email="member@example.com", name=None, password=None)

        user_id = create_admin(
            self.db, email="member@example.com", name=None, password=None, promote=True
        )
        self.assertEqual(user_id, member.id)
        self.assertEqual(self.db.get_user(member.id).role, Role.ADMIN)

    def test_rejects_short_password(self):
        with self.assertRaises(ValueError):
            create_admin(self.db, email="new@example.com", name="New", password="123")


if __name__ == "__main__":
    unittest.main()
