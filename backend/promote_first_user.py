#!/usr/bin/env python3
"""
Bootstrap an empty deployment: when there are no active users, reactivate the earliest
created user and make it `owner`.
"""
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from studyprep.repositories.users import get_user_repository  # noqa: E402
from studyprep.services.admin_users import promote_first_user  # noqa: E402


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    repo = get_user_repository()
    print(f"Active users count: {repo.count(is_active=True)}")
    try:
        promoted = promote_first_user(repo)
    except Exception as exc:
        print(f"Error promoting first user: {exc}")
        return 1
    if promoted is not None:
        print(f"Promoted user {promoted.id} <{promoted.email}> to owner and reactivated.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
