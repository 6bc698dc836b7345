import argparse
import getpass
import logging
from typing import Optional

from database import session_scope
from errors import DuplicateName
from services import UserService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_admin(email: str, password: str, name: Optional[str] = None) -> int:
    with session_scope() as session:
        user = UserService(session).create_admin(email, password, name)
        return user.id


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a verified admin account")
    parser.add_argument("email")
    parser.add_argument("--name", default=None)
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    if len(password) < 8:
        parser.error("password must be at least 8 characters")
    try:
        user_id = create_admin(args.email, password, args.name)
    except DuplicateName as exc:
        parser.exit(1, f"{exc.message}\n")
    logger.info(f"admin_created: id={user_id} email={args.email}")


if __name__ == "__main__":
    main()
