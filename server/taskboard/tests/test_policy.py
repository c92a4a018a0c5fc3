import unittest

from taskboard.errors import Forbidden
from taskboard.policy import Principal, Role, can_access, require_admin


class PolicyTests(unittest.TestCase):
    def test_owner_may_access_own_record(self):
        member = Principal(user_id="u1", role=Role.USER)
        self.assertTrue(can_access(member, "u1"))

    def test_member_denied_on_foreign_record(self):
        member = Principal(user_id="u1", role=Role.USER)
        self.assertFalse(can_access(member, "u2"))

    def test_admin_may_access_any_record(self):
        admin = Principal(user_id="a1", role=Role.ADMIN)
        self.assertTrue(can_access(admin, "u2"))
        self.assertTrue(admin.is_admin)

    def test_require_admin(self):
        require_admin(Principal(user_id="a1", role=Role.ADMIN))
        with self.assertRaises(Forbidden):
            require_admin(Principal(user_id="u1", role=Role.USER))


if __name__ == "__main__":
    unittest.main()
