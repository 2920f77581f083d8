#!/usr/bin/env python3
"""
Sets the role custom claim of a Firebase user and mirrors it into the user store.

Usage: python set_role_claim.py <user_email> <user|admin|owner>
"""
import sys

from dotenv import load_dotenv

load_dotenv()

from studyprep.core import firebase  # noqa: E402
from studyprep.repositories.users import get_user_repository  # noqa: E402
from studyprep.schemas.principal import ROLES  # noqa: E402


def set_role_claim(user_email: str, role: str) -> bool:
    """Returns False when the user is unknown to Firebase."""
    record = firebase.get_user_by_email(user_email)
    if record is None:
        print(f"User not found: {user_email}")
        return False
    print(f"User found: {record.uid} - {record.email}")

    firebase.set_role_claim(record.uid, role)
    print(f"Role claim '{role}' set for: {user_email}")

    repo = get_user_repository()
    if repo.update(record.uid, {"role": role}) is None:
        print("No stored profile yet; it will be created on the next sign-in")
    return True


if __name__ == "__main__":
    if len(sys.argv) != 3 or sys.argv[2] not in ROLES:
        print("Usage: python set_role_claim.py <user_email> <user|admin|owner>")
        print("Example: python set_role_claim.py jane@example.com admin")
        sys.exit(1)

    user_email, role = sys.argv[1], sys.argv[2]
    if not set_role_claim(user_email.strip().lower(), role):
        print("Failed to set role claim")
        sys.exit(1)
    print("The user will need to sign out and sign in again for the change to take effect.")
