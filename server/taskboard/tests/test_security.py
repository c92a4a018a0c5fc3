import time
import unittest
from datetime import timedelta

import jwt

from taskboard.db import InMemoryDbClient
from taskboard.errors import InvalidCredentials, InvalidToken
from taskboard.policy import Role
from taskboard.security import AuthService

SECRET = "test-secret"


class AuthServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.auth = AuthService(self.db, secret=SECRET, bcrypt_rounds=4)
        self.user = self.db.create_user(
            "Alice", "alice@example.com", self.auth.hash_password("secret1")
        )

    def test_hash_is_salted_and_verifiable(self):
        hashed = self.auth.hash_password("secret1")
        self.assertNotEqual(hashed, "secret1")
        self.assertNotEqual(hashed, self.auth.hash_password("secret1"))
        self.assertTrue(self.auth.verify_password("secret1", hashed))
        self.assertFalse(self.auth.verify_password("secret2", hashed))

    def test_authenticate_issues_verifiable_token(self):
        user, token = self.auth.authenticate("alice@example.com", "secret1")
        self.assertEqual(user.id, self.user.id)

        principal = self.auth.verify(token)
        self.assertEqual(principal.user_id, self.user.id)
        self.assertEqual(principal.role, Role.USER)

    def test_token_carries_admin_role(self):
        admin = self.db.create_user(
            "Root", "root@example.com", "unused", role=Role.ADMIN
        )
        principal = self.auth.verify(self.auth.issue_token(admin))
        self.assertEqual(principal.role, Role.ADMIN)

    def test_token_expires_after_a_day_by_default(self):
        token = self.auth.issue_token(self.user)
        payload = jwt.decode(token, SECRET, algorithms=["HS256"])
        self.assertEqual(payload["exp"] - payload["iat"], 24 * 60 * 60)

    def test_bad_credentials_are_indistinguishable(self):
        with self.assertRaises(InvalidCredentials) as wrong_password:
            self.auth.authenticate("alice@example.com", "nope")
        with self.assertRaises(InvalidCredentials) as unknown_email:
            self.auth.authenticate("nobody@example.com", "secret1")
        self.assertEqual(wrong_password.exception.message, unknown_email.exception.message)

    def test_expired_token_rejected(self):
        expired = AuthService(
            self.db, secret=SECRET, token_ttl=timedelta(seconds=-30), bcrypt_rounds=4
        )
        token = expired.issue_token(self.user)
        with self.assertRaises(InvalidToken):
            self.auth.verify(token)

    def test_foreign_signature_rejected(self):
        other = AuthService(self.db, secret="another-secret", bcrypt_rounds=4)
        with self.assertRaises(InvalidToken):
            self.auth.verify(other.issue_token(self.user))

    def test_malformed_tokens_rejected(self):
        exp = int(time.time()) + 60
        bad_role = jwt.encode({"sub": self.user.id, "role": "root", "exp": exp}, SECRET)
        no_role = jwt.encode({"sub": self.user.id, "exp": exp}, SECRET)
        no_expiry = jwt.encode({"sub": self.user.id, "role": "user"}, SECRET)
        for token in ("garbage", "a.b.c", bad_role, no_role, no_expiry):
            with self.subTest(token=token):
                with self.assertRaises(InvalidToken):
                    self.auth.verify(token)


if __name__ == "__main__":
    unittest.main()
