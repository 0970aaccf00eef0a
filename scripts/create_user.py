"""
Create a staff account from the command line.

Usage:
  python -m scripts.create_user you@example.com 'password' price_manager "Full Name"
"""
import sys

from dotenv import load_dotenv

from core.database import ROLES, create_user, init_db
from core.errors import QuoteDeskError


def main():
    load_dotenv(override=True)
    if len(sys.argv) < 4:
        print("Usage: python -m scripts.create_user <email> <password> <role> [full name]")
        print(f"Roles: {', '.join(ROLES)}")
        sys.exit(1)

    email, password, role = sys.argv[1:4]
    full_name = sys.argv[4] if len(sys.argv) > 4 else None

    init_db()
    try:
        user_id = create_user(email, password, username=email.split("@")[0], full_name=full_name, role=role)
    except QuoteDeskError as exc:
        print(f"Could not create user: {exc}")
        sys.exit(1)
    print(f"Created {role} {email} (id={user_id})")


if __name__ == "__main__":
    main()
