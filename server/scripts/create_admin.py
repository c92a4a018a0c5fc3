"""
Create an administrator account, or promote an existing user to administrator.

Registration through the API always creates regular users, so the first
administrator has to be created here.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskboard.config import get_settings
from taskboard.db import DbClient, DuplicateEmailError, SqlDbClient
from taskboard.policy import Role
from taskboard.security import build_password_context


logger = logging.getLogger(__name__)


def create_admin(
    db: DbClient,
    *,
    email: str,
    name: Optional[str],
    password: Optional[str],
    promote: bool = False,
    bcrypt_rounds: int = 10,
) -> str:
    """Return the id of the administrator that was created or promoted."""
    existing = db.get_user_by_email(email)
    if existing:
        if not promote:
            raise DuplicateEmailError(email)
        db.update_user(existing.id, {"role": Role.ADMIN})
        logger.info("Promoted %s to administrator", existing.id)
        return existing.id

    if not name or not password:
        raise ValueError("--name and a password are required to create a new user")
    if len(password) < 6:
        raise ValueError("Password must be at least 6 characters")
    password_hash = build_password_context(bcrypt_rounds).hash(password)
    user = db.create_user(name, email, password_hash, role=Role.ADMIN)
    logger.info("Created administrator %s", user.id)
    return user.id


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default=None)
    parser.add_argument(
        "--password",
        default=None,
        help="Prompted for when omitted and a new user is being created",
    )
    parser.add_argument(
        "--promote",
        action="store_true",
        help="Promote the user if the email is already registered",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    if not settings.database_url:
        logger.error("DATABASE_URL is not set")
        return 1
    db = SqlDbClient(settings.database_url)

    password = args.password
    if password is None and db.get_user_by_email(args.email) is None:
        password = getpass.getpass("Password: ")

    try:
        create_admin(
            db,
            email=args.email,
            name=args.name,
            password=password,
            promote=args.promote,
            bcrypt_rounds=settings.bcrypt_rounds,
        )
    except DuplicateEmailError:
        logger.error("%s is already registered; pass --promote to promote it", args.email)
        return 1
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
