"""
Create an operator account (e.g. the first admin). Run from project root:
  python -m secmon.scripts.create_user USERNAME PASSWORD [role]
Example:
  python -m secmon.scripts.create_user admin your-secure-password admin
"""
import argparse
import sys

from secmon.core.database import SessionLocal
from secmon.core.security import (
    OPERATOR_ROLES,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    hash_password,
)
from secmon.models.user import User


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a secmon operator account.")
    parser.add_argument("username", help=f"Username (1-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("role", nargs="?", default="user", choices=OPERATOR_ROLES)
    args = parser.parse_args(argv)

    username = args.username.strip()
    if not username or len(username) > USERNAME_MAX_LEN:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN:
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        if db.query(User).filter(User.username == username).first():
            print(f"User '{username}' already exists.", file=sys.stderr)
            return 1
        db.add(User(username=username, password_hash=hash_password(args.password), role=args.role))
        db.commit()
        print(f"Created operator '{username}' with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
